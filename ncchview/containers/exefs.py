'''
# Executable filesystem

A flat archive of at most ten files (the code, the icon, the banner, ...)
preceded by a 0x200 bytes header

      .---------------------------------------.
 0x000| 10 entries: name[8], offset, size     |
 0x0A0| reserved                              |
 0x0C0| 10 SHA-256, last entry first          |
 0x200| file data, offsets relative to here   |
      '---------------------------------------'

When the NCCH uses a secondary key, the header, "icon" and "banner" are
still encrypted with the primary key and every other file with the secondary
one: both decrypted views of the whole region are needed.

See <https://www.3dbrew.org/wiki/ExeFS>.
'''
import struct
from typing import List, Tuple

from ..core import Container
from ..common.verify import Sha
from ..streams import ByteSource, SubSource


EXEFS_HEADER_SIZE = 0x200
EXEFS_MAX_ENTRIES = 10
EXEFS_ENTRY_SIZE = 0x10
EXEFS_HASHES_OFFSET = 0xC0
PRIMARY_KEY_FILES = {'icon', 'banner'}


class Exefs(Container):

    def __init__(self, primary: ByteSource, secondary: ByteSource):
        super().__init__(primary)
        self.primary = primary
        self.secondary = secondary

        entries = self.parse_entries()
        self.install('Entries', lambda: tuple(name for _, name, _, _ in entries))

        for slot, name, offset, size in entries:
            if EXEFS_HEADER_SIZE + offset + size > primary.size:
                self.logger.warning("file '%s' at 0x%x (0x%x bytes) is outside the ExeFS", name, offset, size)
                self.install(f'{name}Error', lambda: 'outside of the ExeFS')
                continue

            self.install_list({
                name: lambda offset=offset, size=size, name=name: self.file_source(name, offset, size),
                f'{name}Hash': lambda offset=offset, size=size, name=name, slot=slot: Sha(
                    self.file_source(name, offset, size),
                    SubSource(self.primary, self.hash_offset(slot), 0x20)),
            })

    def parse_entries(self) -> List[Tuple[int, str, int, int]]:
        '''(slot, name, offset, size) of the used entries; unused slots
        are skipped but keep their number.'''
        header = self.primary.read(0, EXEFS_MAX_ENTRIES * EXEFS_ENTRY_SIZE)

        entries = []
        for slot in range(EXEFS_MAX_ENTRIES):
            raw_name, offset, size = struct.unpack_from('<8sII', header, slot * EXEFS_ENTRY_SIZE)
            name = raw_name.split(b'\x00', 1)[0].decode('ascii', errors='replace')
            if not name:
                continue
            entries.append((slot, name, offset, size))

        return entries

    @staticmethod
    def hash_offset(slot: int) -> int:
        # the digests are stored last slot first
        return EXEFS_HASHES_OFFSET + (EXEFS_MAX_ENTRIES - 1 - slot) * 0x20

    def file_source(self, name: str, offset: int, size: int) -> ByteSource:
        source = self.primary if name in PRIMARY_KEY_FILES else self.secondary
        return SubSource(source, EXEFS_HEADER_SIZE + offset, size)
