'''
Byte sources: randomly addressable, read-only sequences of bytes.

A format never reads a file directly, it reads from a ByteSource; sources
can be layered one on top of another without copying:

 1. DiskSource: a file on disk
 2. MemorySource: bytes owned by the source itself (the only writable one)
 3. SubSource: a window over another source
 4. PatchSource: another source with a small range replaced
 5. AesCtrSource: the AES-CTR plaintext of another source

The layered sources keep a reference to their parent: a parent lives as long
as any of its views.
'''
import logging
import os
import threading

from Cryptodome.Cipher import AES
from Cryptodome.Util import Counter

from .exceptions import OutOfRangeException, IoException


logger = logging.getLogger(__name__)

AES_BLOCK_SIZE = 0x10


class ByteSource(object):
    '''Base class: subclasses define _get_size() and _read().'''

    def _get_size(self) -> int:
        raise NotImplementedError(f"method {self.__class__.__name__}._get_size() not implemented")

    size = property(
        fget=lambda self: self._get_size(),
    )

    def __len__(self):
        return self.size

    def __repr__(self):
        return '<%s(size=0x%x)>' % (self.__class__.__name__, self.size)

    def _check_range(self, offset, length):
        if offset < 0 or length < 0 or offset + length > self.size:
            raise OutOfRangeException(
                'read of 0x%x bytes at 0x%x is outside %r' % (length, offset, self))

    def _read(self, offset: int, length: int) -> bytes:
        raise NotImplementedError(f"method {self.__class__.__name__}._read() not implemented")

    def read(self, offset: int, length: int) -> bytes:
        self._check_range(offset, length)
        if length == 0:
            return b''

        return self._read(offset, length)

    def read_all(self) -> bytes:
        return self.read(0, self.size)

    def close(self):
        pass


class DiskSource(ByteSource):
    '''A file on disk, opened read-only for the lifetime of the source.'''

    def __init__(self, path):
        self.path = os.fspath(path)
        logger.debug('opening path \'%s\'' % self.path)
        try:
            self._file = open(self.path, 'rb')
        except OSError as e:
            raise IoException('cannot open \'%s\': %s' % (self.path, e)) from e
        self._size = os.fstat(self._file.fileno()).st_size
        self._lock = threading.Lock()

    def __repr__(self):
        return '<%s(%r, size=0x%x)>' % (self.__class__.__name__, self.path, self._size)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self._file.close()

    def _get_size(self):
        return self._size

    def _read(self, offset, length):
        with self._lock:
            try:
                self._file.seek(offset)
                data = self._file.read(length)
            except (OSError, ValueError) as e:
                raise IoException('cannot read \'%s\': %s' % (self.path, e)) from e

        if len(data) != length:
            raise IoException('short read from \'%s\': 0x%x bytes at 0x%x, got 0x%x' % (
                self.path, length, offset, len(data)))

        return data


class MemorySource(ByteSource):
    '''Bytes owned by the source; single bytes can be modified in place,
    which is how small patches are authored.'''

    def __init__(self, data=b'', size=None, fill=0):
        if size is not None:
            data = bytes([fill]) * size
        self._data = bytearray(data)

    def __getitem__(self, index):
        return self._data[index]

    def __setitem__(self, index, value):
        self._data[index] = value

    def _get_size(self):
        return len(self._data)

    def _read(self, offset, length):
        return bytes(self._data[offset:offset + length])


class SubSource(ByteSource):
    '''A window of size bytes starting at offset inside parent.'''

    def __init__(self, parent: ByteSource, offset: int, size: int):
        if offset < 0 or size < 0 or offset + size > parent.size:
            raise OutOfRangeException(
                'window of 0x%x bytes at 0x%x is outside %r' % (size, offset, parent))
        self.parent = parent
        self.offset = offset
        self._size = size

    def __repr__(self):
        return '<%s(offset=0x%x, size=0x%x)>' % (self.__class__.__name__, self.offset, self._size)

    def _get_size(self):
        return self._size

    def _read(self, offset, length):
        return self.parent.read(self.offset + offset, length)


class PatchSource(ByteSource):
    '''The base source with the content of patch laid over it at offset.'''

    def __init__(self, base: ByteSource, patch: ByteSource, offset: int):
        if offset < 0 or offset + patch.size > base.size:
            raise OutOfRangeException(
                'patch of 0x%x bytes at 0x%x does not fit %r' % (patch.size, offset, base))
        self.base = base
        self.patch = patch
        self.offset = offset

    def _get_size(self):
        return self.base.size

    def _read(self, offset, length):
        data = bytearray(self.base.read(offset, length))

        start = max(offset, self.offset)
        end = min(offset + length, self.offset + self.patch.size)
        if start < end:
            data[start - offset:end - offset] = self.patch.read(start - self.offset, end - start)

        return bytes(data)


class AesCtrSource(ByteSource):
    '''Transparent AES-128-CTR decryption of parent.

    The counter of the block containing byte n of this view is iv + n // 16,
    so n is relative to the view and not to whatever parent lies below it.
    Nothing is kept between reads.'''

    def __init__(self, parent: ByteSource, key: bytes, iv: bytes):
        if len(key) != 0x10:
            raise ValueError('AES-128 key must be 16 bytes, got %d' % len(key))
        if len(iv) != 0x10:
            raise ValueError('AES-CTR counter must be 16 bytes, got %d' % len(iv))
        self.parent = parent
        self.key = bytes(key)
        self.iv = bytes(iv)

    def __repr__(self):
        return '<%s(iv=%s, size=0x%x)>' % (self.__class__.__name__, self.iv.hex(), self.size)

    def _get_size(self):
        return self.parent.size

    def _cipher(self, offset):
        initial_value = (int.from_bytes(self.iv, 'big') + offset // AES_BLOCK_SIZE) % (1 << 128)
        counter = Counter.new(128, initial_value=initial_value, allow_wraparound=True)
        cipher = AES.new(self.key, AES.MODE_CTR, counter=counter)
        # skip the keystream preceding offset inside its block
        cipher.decrypt(b'\x00' * (offset % AES_BLOCK_SIZE))
        return cipher

    def _read(self, offset, length):
        return self._cipher(offset).decrypt(self.parent.read(offset, length))


def open_source(obj) -> ByteSource:
    '''Normalize obj into a ByteSource: raw bytes are kept in memory,
    strings and paths are opened from disk.'''
    if isinstance(obj, ByteSource):
        return obj
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return MemorySource(bytes(obj))
    if isinstance(obj, (str, os.PathLike)):
        return DiskSource(obj)

    raise ValueError('\'%s\' is the wrong kind of object to read from' % obj.__class__.__name__)
