'''
Providers for the values that can't be shipped: the console secrets (keys
and public keys) and the per-title seeds of seed crypto.

Both are plain in-memory databases, they can be filled by hand or loaded
from the usual files:

 - secrets: text with one "name=hexvalue" per line, '#' starts a comment
 - seeds: the seeddb.bin format, a little-endian u32 with the number of
   entries, 12 bytes of padding, then 0x20 bytes per entry (u64 program id,
   16 bytes of seed, 8 bytes of padding)
'''
import logging
import struct
from typing import Dict, List, Optional

from .exceptions import SecretFormatException


logger = logging.getLogger(__name__)

SEED_SIZE = 0x10
SEEDDB_HEADER_SIZE = 0x10
SEEDDB_ENTRY_SIZE = 0x20


class SecretDatabase(object):

    def __init__(self, secrets: Optional[Dict[str, bytes]] = None):
        self._secrets: Dict[str, bytes] = dict(secrets or {})

    def __repr__(self):
        return '<%s(%s)>' % (self.__class__.__name__, ','.join(self.names()))

    def __contains__(self, name):
        return name in self._secrets

    def get(self, name: str) -> bytes:
        '''The secret called name, empty if there is none.'''
        return self._secrets.get(name, b'')

    def set(self, name: str, value: bytes) -> None:
        self._secrets[name] = bytes(value)

    def remove(self, name: str) -> None:
        self._secrets.pop(name, None)

    def remove_all(self) -> None:
        self._secrets.clear()

    def names(self) -> List[str]:
        return sorted(self._secrets)

    @classmethod
    def from_file(cls, path) -> 'SecretDatabase':
        database = cls()
        with open(path, 'r') as f:
            for lineno, line in enumerate(f, start=1):
                line = line.split('#', 1)[0].strip()
                if not line:
                    continue

                name, sep, value = line.partition('=')
                name, value = name.strip(), value.strip()
                if not sep or not name:
                    raise SecretFormatException('%s:%d: expected name=value' % (path, lineno))
                try:
                    database.set(name, bytes.fromhex(value))
                except ValueError:
                    raise SecretFormatException('%s:%d: \'%s\' is not hexadecimal' % (path, lineno, value))

        logger.debug('loaded %d secrets from \'%s\'' % (len(database.names()), path))

        return database


class SeedDatabase(object):

    def __init__(self, seeds: Optional[Dict[int, bytes]] = None):
        self._seeds: Dict[int, bytes] = {}
        for program_id, seed in (seeds or {}).items():
            self.add(program_id, seed)

    def __len__(self):
        return len(self._seeds)

    def get(self, program_id: int) -> Optional[bytes]:
        return self._seeds.get(program_id)

    def add(self, program_id: int, seed: bytes) -> None:
        if len(seed) != SEED_SIZE:
            raise ValueError('seed must be %d bytes, got %d' % (SEED_SIZE, len(seed)))
        self._seeds[program_id] = bytes(seed)

    @classmethod
    def from_file(cls, path) -> 'SeedDatabase':
        with open(path, 'rb') as f:
            data = f.read()

        if len(data) < SEEDDB_HEADER_SIZE:
            raise SecretFormatException('\'%s\' is too short to be a seed database' % path)

        count = struct.unpack_from('<I', data, 0)[0]
        if len(data) < SEEDDB_HEADER_SIZE + count * SEEDDB_ENTRY_SIZE:
            raise SecretFormatException('\'%s\' declares %d seeds but is truncated' % (path, count))

        database = cls()
        for idx in range(count):
            offset = SEEDDB_HEADER_SIZE + idx * SEEDDB_ENTRY_SIZE
            program_id = struct.unpack_from('<Q', data, offset)[0]
            database.add(program_id, data[offset + 8:offset + 8 + SEED_SIZE])

        logger.debug('loaded %d seeds from \'%s\'' % (count, path))

        return database
