# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Local file ids for classes compiled into a module.

The engine identifies a script class inside a binary module by a 32-bit id
derived from the class' namespace and (nested) name:

  md4(b"s\\0\\0\\0" + utf8(namespace) + utf8(name))[0:4], little endian, signed

MD4 is implemented here in pure Python (RFC 1320): it is gone from most
OpenSSL builds, and the id must be bit-identical on every host.
"""

from __future__ import annotations

import struct

MASK32 = 0xFFFFFFFF

# Class id of MonoScript (115) as a little-endian int32.
FILE_ID_PREFIX = b"s\x00\x00\x00"

_ROUND2 = 0x5A827999
_ROUND3 = 0x6ED9EBA1


def _rotl(x: int, r: int) -> int:
	return ((x << r) & MASK32) | (x >> (32 - r))


def _f(x: int, y: int, z: int) -> int:
	return (x & y) | (~x & MASK32 & z)


def _g(x: int, y: int, z: int) -> int:
	return (x & y) | (x & z) | (y & z)


def _h(x: int, y: int, z: int) -> int:
	return x ^ y ^ z


def _pad(data: bytes) -> bytes:
	bit_len = (len(data) * 8) & 0xFFFFFFFFFFFFFFFF
	padding = b"\x80" + b"\x00" * ((55 - len(data)) % 64)
	return data + padding + struct.pack("<Q", bit_len)


def md4(data: bytes) -> bytes:
	"""Compute the 16-byte MD4 digest of `data`."""
	a, b, c, d = 0x67452301, 0xEFCDAB89, 0x98BADCFE, 0x10325476
	msg = _pad(data)
	for off in range(0, len(msg), 64):
		x = struct.unpack("<16I", msg[off:off + 64])
		aa, bb, cc, dd = a, b, c, d

		for i in range(0, 16, 4):
			a = _rotl((a + _f(b, c, d) + x[i]) & MASK32, 3)
			d = _rotl((d + _f(a, b, c) + x[i + 1]) & MASK32, 7)
			c = _rotl((c + _f(d, a, b) + x[i + 2]) & MASK32, 11)
			b = _rotl((b + _f(c, d, a) + x[i + 3]) & MASK32, 19)

		for i in range(4):
			a = _rotl((a + _g(b, c, d) + x[i] + _ROUND2) & MASK32, 3)
			d = _rotl((d + _g(a, b, c) + x[i + 4] + _ROUND2) & MASK32, 5)
			c = _rotl((c + _g(d, a, b) + x[i + 8] + _ROUND2) & MASK32, 9)
			b = _rotl((b + _g(c, d, a) + x[i + 12] + _ROUND2) & MASK32, 13)

		for i in (0, 2, 1, 3):
			a = _rotl((a + _h(b, c, d) + x[i] + _ROUND3) & MASK32, 3)
			d = _rotl((d + _h(a, b, c) + x[i + 8] + _ROUND3) & MASK32, 9)
			c = _rotl((c + _h(d, a, b) + x[i + 4] + _ROUND3) & MASK32, 11)
			b = _rotl((b + _h(c, d, a) + x[i + 12] + _ROUND3) & MASK32, 15)

		a = (a + aa) & MASK32
		b = (b + bb) & MASK32
		c = (c + cc) & MASK32
		d = (d + dd) & MASK32

	return struct.pack("<4I", a, b, c, d)


def digest_to_file_id(digest: bytes) -> int:
	"""
	Fold the first four digest bytes into a signed 32-bit id.

	Byte 3 is the most significant byte; this order is pinned by existing
	asset data and must not change.
	"""
	result = 0
	for i in range(3, -1, -1):
		result = ((result << 8) | digest[i]) & MASK32
	if result & 0x80000000:
		result -= 1 << 32
	return result


def compute_file_id(namespace: str | None, name: str) -> int:
	"""Return the local file id of class `name` declared in `namespace`."""
	data = FILE_ID_PREFIX + (namespace or "").encode("utf-8") + name.encode("utf-8")
	return digest_to_file_id(md4(data))
