'''
# Extended header

The 0x800 bytes following the NCCH header of executable contents: how the
loader lays out the code (system control info, SCI) and what the title is
allowed to do (access control info, ACI), followed by the access descriptor
signed by the console maker, which carries the public key verifying the NCCH
header itself.

      .------------------------------------.
 0x000| SCI                                |
 0x200| ACI                                |
 0x400| AccessDesc signature               |
 0x500| NCCH header public key (modulus)   |
 0x600| ACI for limitation                 |
      '------------------------------------'

See <https://www.3dbrew.org/wiki/NCCH/Extended_Header>.
'''
from ..core import Container
from ..common.keys import K_SEC_PUBKEY_EXHEADER
from ..common.verify import Rsa
from ..secrets import SecretDatabase
from ..streams import SubSource, MemorySource
from .. import fields


EXHEADER_SIZE = 0x800
MAX_DEPENDENCIES = 0x30


def _dependencies(exheader):
    '''Program ids of the modules the title depends on, zeros dropped.'''
    program_ids = (
        int.from_bytes(exheader.source.read(0x40 + 8 * idx, 8), 'little') for idx in range(MAX_DEPENDENCIES)
    )
    return tuple(_ for _ in program_ids if _)


class Exheader(Container):
    # SCI
    ApplicationTitle      = fields.TextField(0x000, 8)
    Flags                 = fields.StructField('B', 0x00D)
    IsCompressedExefsCode = fields.FlagField('Flags', 0x1)
    IsSdApplication       = fields.FlagField('Flags', 0x2)
    RemasterVersion       = fields.StructField('H', 0x00E)
    TextAddress           = fields.StructField('I', 0x010)
    TextPages             = fields.StructField('I', 0x014)
    TextSize              = fields.StructField('I', 0x018)
    StackSize             = fields.StructField('I', 0x01C)
    RoAddress             = fields.StructField('I', 0x020)
    RoPages               = fields.StructField('I', 0x024)
    RoSize                = fields.StructField('I', 0x028)
    DataAddress           = fields.StructField('I', 0x030)
    DataPages             = fields.StructField('I', 0x034)
    DataSize              = fields.StructField('I', 0x038)
    BssSize               = fields.StructField('I', 0x03C)
    Dependencies          = fields.DerivedField(_dependencies)
    SaveDataSize          = fields.StructField('Q', 0x1C0)
    JumpId                = fields.StructField('Q', 0x1C8)
    # ACI
    ProgramId             = fields.StructField('Q', 0x200)
    CoreVersion           = fields.StructField('I', 0x208)
    # access descriptor
    AccessDescSignature    = fields.SourceField(0x400, 0x100)
    NcchSignaturePublicKey = fields.SourceField(0x500, 0x100)
    AccessDescProgramId    = fields.StructField('Q', 0x600)
    AccessDescVerification = fields.DerivedField(
        lambda exheader: Rsa(
            SubSource(exheader.source, 0x500, 0x300),
            exheader.AccessDescSignature.value,
            MemorySource(exheader.secrets.get(K_SEC_PUBKEY_EXHEADER)),
        ))

    def __init__(self, source, secrets=None):
        super().__init__(source)
        self.secrets = secrets if secrets is not None else SecretDatabase()

        if self.source.size < EXHEADER_SIZE:
            self.logger.warning('extended header is 0x%x bytes instead of 0x%x', self.source.size, EXHEADER_SIZE)
