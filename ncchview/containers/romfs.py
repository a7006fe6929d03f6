'''
# Read-only filesystem

The RomFS region starts with an IVFC header describing a three level hash
tree; the filesystem proper is the third level, placed after the master
hash aligned to its block size.

See <https://www.3dbrew.org/wiki/RomFS>.
'''
from ..core import Container
from ..streams import SubSource
from .. import fields


IVFC_MAGIC = b'IVFC'
IVFC_MAGIC_NUMBER = 0x10000
IVFC_HEADER_SIZE = 0x60
IVFC_LEVEL_OFFSET = 0x0C
IVFC_LEVEL_SIZE = 0x18


def _align(value, alignment):
    return (value + alignment - 1) // alignment * alignment


def _level3(romfs):
    block_size = 1 << romfs.value_of('Level3BlockSize', int)
    offset = _align(IVFC_HEADER_SIZE + romfs.value_of('MasterHashSize', int), block_size)
    return SubSource(romfs.source, offset, romfs.value_of('Level3HashDataSize', int))


class Romfs(Container):
    Magic          = fields.StringField(0x00, 4)
    MagicNumber    = fields.StructField('I', 0x04)
    MasterHashSize = fields.StructField('I', 0x08)
    IsValid        = fields.DerivedField(
        lambda romfs: romfs.value_of('Magic') == IVFC_MAGIC and romfs.value_of('MagicNumber') == IVFC_MAGIC_NUMBER)
    Level3         = fields.DerivedField(_level3)

    def __init__(self, source):
        super().__init__(source)

        for level in range(1, 4):
            base = IVFC_LEVEL_OFFSET + (level - 1) * IVFC_LEVEL_SIZE
            self.install_list({
                f'Level{level}LogicalOffset': fields.StructField('Q', base),
                f'Level{level}HashDataSize':  fields.StructField('Q', base + 0x08),
                f'Level{level}BlockSize':     fields.StructField('I', base + 0x10),
            })
