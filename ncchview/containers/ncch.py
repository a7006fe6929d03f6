'''
# NCCH

The container of every content of the console (applications, system
modules, manuals, DLC...). A 0x200 bytes header, signed with RSA-2048, is
followed by up to five regions, all of them optional:

  .----------------------------------------.
  | signature (0x100)                      |  the first 0x10 bytes are the KeyY
  | header (0x100)                         |
  | extended header (0x800)                |  encrypted, primary key
  | plain region                           |
  | logo region                            |
  | ExeFS                                  |  encrypted, primary + secondary key
  | RomFS                                  |  encrypted, secondary key
  '----------------------------------------'

Offsets and sizes of the regions are in media units of 0x200 bytes, the
extended header is always right after the header.

Encryption is AES-128-CTR with the counter made of the partition id and a
tag for the region. The primary key comes from KeyX 0x2C and the KeyY; the
secondary key from a KeyX selected by the crypto method and the KeyY, hashed
together with the title's seed when seed crypto is used.

Whatever can't be decrypted (missing secrets, missing seed) is reported in
the "<Region>Error" field and the region is not installed, everything else
stays readable.

See <https://www.3dbrew.org/wiki/NCCH>.
'''
import struct
from hashlib import sha256

from ..core import Container
from ..enum import SeedStatus, IvType
from ..common.keys import (
    scramble,
    fixed_key,
    is_valid_key,
    crypto_method_key_x,
    K_SEC_AES_CONST,
    K_SEC_KEY2C_X,
    K_SEC_PUBKEY_NCSD_CFA,
)
from ..common.verify import Sha, Rsa
from ..exceptions import (
    OutOfRangeException,
    UnknownCryptoMethodException,
    UnsupportedIvVersionException,
)
from ..secrets import SecretDatabase, SeedDatabase
from ..streams import (
    ByteSource,
    SubSource,
    MemorySource,
    PatchSource,
    AesCtrSource,
)
from .. import fields
from .exheader import Exheader, EXHEADER_SIZE
from .exefs import Exefs
from .romfs import Romfs, IVFC_MAGIC


NCCH_MAGIC = b'NCCH'
MEDIA_UNIT = 0x200
SIGNATURE_OFFSET = 0x000
HEADER_OFFSET = 0x100
HEADER_SIZE = 0x100
EXHEADER_OFFSET = 0x200
EXHEADER_HASH_OFFSET = 0x160
EXEFS_HASH_OFFSET = 0x1C0
ROMFS_HASH_OFFSET = 0x1E0
# offset of ContentType2 inside the signed header
CONTENT_TYPE2_HEADER_OFFSET = 0x8F

CONTENT_TYPE2_FIXED_KEY = 0x01
CONTENT_TYPE2_NO_ROMFS  = 0x02
CONTENT_TYPE2_NO_CRYPTO = 0x04
CONTENT_TYPE2_SEED      = 0x20


def region_iv(partition_id: bytes, iv_type: IvType) -> bytes:
    '''The initial counter of a region: the partition id as stored in the
    header reversed, the region tag, then zeros.'''
    if len(partition_id) != 8:
        raise ValueError('partition id must be 8 bytes, got %d' % len(partition_id))
    return bytes(reversed(partition_id)) + bytes([iv_type]) + bytes(7)


def seed_verifier(seed: bytes, program_id: int) -> bytes:
    '''The 4 bytes stored in the header to check the seed of program_id.'''
    return sha256(seed + struct.pack('<Q', program_id)).digest()[:4]


class Ncch(Container):
    RawSignature  = fields.SourceField(SIGNATURE_OFFSET, 0x100)
    Header        = fields.SourceField(HEADER_OFFSET, HEADER_SIZE)
    KeyY          = fields.SourceField(0x000, 0x10)

    Magic                  = fields.StringField(0x100, 4)
    ContentSize            = fields.StructField('I', 0x104)
    PartitionId            = fields.StructField('Q', 0x108)
    MakerCode              = fields.StructField('H', 0x110)
    Version                = fields.StructField('H', 0x112)
    SeedVerifier           = fields.StructField('I', 0x114)
    ProgramId              = fields.StructField('Q', 0x118)
    ProductCode            = fields.TextField(0x150, 0x10)
    ExheaderHashRegionSize = fields.StructField('I', 0x180)
    CryptoMethod           = fields.StructField('B', 0x18B)
    Platform               = fields.StructField('B', 0x18C)

    ContentTypeFlags = fields.StructField('B', 0x18D)
    IsData           = fields.FlagField('ContentTypeFlags', 0x1)
    IsExecutable     = fields.FlagField('ContentTypeFlags', 0x2)
    ContentType      = fields.DerivedField(lambda ncch: ncch.value_of('ContentTypeFlags', int) >> 2)

    ContentType2     = fields.StructField('B', 0x18F)
    IsFixedKeyCrypto = fields.FlagField('ContentType2', CONTENT_TYPE2_FIXED_KEY)
    IsNoRomfsMount   = fields.FlagField('ContentType2', CONTENT_TYPE2_NO_ROMFS)
    IsNoCrypto       = fields.FlagField('ContentType2', CONTENT_TYPE2_NO_CRYPTO)
    IsSeedCrypto     = fields.FlagField('ContentType2', CONTENT_TYPE2_SEED)

    PlainRegionOffset   = fields.StructField('I', 0x190)
    PlainRegionSize     = fields.StructField('I', 0x194)
    LogoRegionOffset    = fields.StructField('I', 0x198)
    LogoRegionSize      = fields.StructField('I', 0x19C)
    ExefsOffset         = fields.StructField('I', 0x1A0)
    ExefsSize           = fields.StructField('I', 0x1A4)
    ExefsHashRegionSize = fields.StructField('I', 0x1A8)
    RomfsOffset         = fields.StructField('I', 0x1B0)
    RomfsSize           = fields.StructField('I', 0x1B4)
    RomfsHashRegionSize = fields.StructField('I', 0x1B8)

    def __init__(self, source, secrets=None, seeds=None):
        super().__init__(source)
        self.secrets = secrets if secrets is not None else SecretDatabase()
        self.seeds = seeds if seeds is not None else SeedDatabase()
        self.seed = None

        magic = self.value_of('Magic')
        if magic != NCCH_MAGIC:
            self.logger.warning('the magic doesn\'t correspond: %r', magic)

        self.seed_status = self.init_seed()
        self.force_no_crypto = self.check_force_no_crypto()

        self.install_list({
            'SeedStatus': fields.ConstField(self.seed_status),
            'IsForceNoCrypto': fields.ConstField(self.force_no_crypto),
        })

        self.install_plain_regions()
        self.install_signatures()
        self.install_exheader()
        self.install_exefs()
        self.install_romfs()

    # header

    def init_seed(self) -> SeedStatus:
        if not self.value_of('IsSeedCrypto', bool):
            return SeedStatus.NOT_NEEDED

        program_id = self.value_of('ProgramId', int)
        seed = self.seeds.get(program_id)
        if seed is None or len(seed) != 0x10:
            self.logger.warning('seed for %016x not found', program_id)
            return SeedStatus.NOT_FOUND

        if seed_verifier(seed, program_id) != struct.pack('<I', self.value_of('SeedVerifier', int)):
            self.logger.warning('seed for %016x doesn\'t match the verifier', program_id)
            return SeedStatus.INCORRECT

        self.seed = seed
        return SeedStatus.FOUND

    def check_force_no_crypto(self) -> bool:
        '''Some tools decrypt the regions without setting the no-crypto flag:
        a plaintext IVFC magic at the start of the RomFS gives them away.'''
        if self.value_of('IsNoCrypto', bool):
            return False

        if not self.value_of('RomfsOffset', int):
            return False

        try:
            magic = self.raw_romfs_source().read(0, 4)
        except OutOfRangeException as e:
            self.logger.warning('cannot look for a plaintext RomFS: %s', e)
            return False

        if magic == IVFC_MAGIC:
            self.logger.warning('RomFS is not encrypted, ignoring the crypto flags')
            return True

        return False

    @property
    def is_decrypted(self) -> bool:
        return self.force_no_crypto or self.value_of('IsNoCrypto', bool)

    def patched_header(self) -> ByteSource:
        '''The header with the no-crypto flag cleared, as it was when signed:
        decrypting tools set the flag without invalidating the signature.'''
        header = SubSource(self.source, HEADER_OFFSET, HEADER_SIZE)
        patch = MemorySource(header.read(CONTENT_TYPE2_HEADER_OFFSET, 1))
        patch[0] &= ~CONTENT_TYPE2_NO_CRYPTO & 0xFF
        return PatchSource(header, patch, CONTENT_TYPE2_HEADER_OFFSET)

    def signature_key(self) -> ByteSource:
        '''Modulus of the key signing the header: contents with an extended
        header carry it there, the others use the one of the console maker.'''
        if self.value_of('ExheaderHashRegionSize', int):
            if self.error('Exheader'):
                return MemorySource()
            return self.open('Exheader').value_of('NcchSignaturePublicKey', ByteSource)

        return MemorySource(self.secrets.get(K_SEC_PUBKEY_NCSD_CFA))

    def install_plain_regions(self):
        for name in ('Plain', 'Logo'):
            offset = self.value_of(f'{name}RegionOffset', int)
            if not offset:
                continue
            size = self.value_of(f'{name}RegionSize', int)
            self.install(name, lambda offset=offset, size=size: SubSource(
                self.source, offset * MEDIA_UNIT, size * MEDIA_UNIT))

    def install_signatures(self):
        signature = SubSource(self.source, SIGNATURE_OFFSET, 0x100)

        self.install_list({
            'Signature': lambda: Rsa(
                SubSource(self.source, HEADER_OFFSET, HEADER_SIZE), signature, self.signature_key()),
            'SignaturePatched': lambda: Rsa(self.patched_header(), signature, self.signature_key()),
        })

    # keys

    def key_y(self) -> bytes:
        return self.source.read(0, 0x10)

    def key_x_name(self) -> str:
        '''Name of the KeyX secret of the secondary key.'''
        return crypto_method_key_x(self.value_of('CryptoMethod', int))

    def primary_key(self) -> bytes:
        if self.value_of('IsFixedKeyCrypto', bool):
            return fixed_key(self.value_of('ProgramId', int))

        self.logger.debug('deriving primary key')
        return scramble(
            self.secrets.get(K_SEC_KEY2C_X),
            self.key_y(),
            self.secrets.get(K_SEC_AES_CONST),
        )

    def secondary_key(self) -> bytes:
        if self.value_of('IsFixedKeyCrypto', bool):
            return fixed_key(self.value_of('ProgramId', int))

        key_y = self.key_y()
        if self.seed_status == SeedStatus.FOUND:
            key_y = sha256(key_y + self.seed).digest()[:0x10]

        self.logger.debug('deriving secondary key')
        return scramble(
            self.secrets.get(self.key_x_name()),
            key_y,
            self.secrets.get(K_SEC_AES_CONST),
        )

    def primary_key_error(self) -> str:
        '''Why the primary key can't be derived, empty if it can.'''
        if self.value_of('IsFixedKeyCrypto', bool):
            return ''

        for name in (K_SEC_AES_CONST, K_SEC_KEY2C_X):
            if not is_valid_key(self.secrets.get(name)):
                return name

        return ''

    def secondary_key_error(self) -> str:
        '''Why the secondary key can't be derived, empty if it can.'''
        if self.value_of('IsFixedKeyCrypto', bool):
            return ''

        if self.seed_status == SeedStatus.INCORRECT:
            return 'seed not correct'
        if self.seed_status == SeedStatus.NOT_FOUND:
            return 'seed not found'

        if not is_valid_key(self.secrets.get(K_SEC_AES_CONST)):
            return K_SEC_AES_CONST

        try:
            key_x_name = self.key_x_name()
        except UnknownCryptoMethodException as e:
            return str(e)

        if not is_valid_key(self.secrets.get(key_x_name)):
            return key_x_name

        return ''

    def crypto_iv(self, iv_type: IvType) -> bytes:
        version = self.value_of('Version', int)
        if version == 1:
            raise UnsupportedIvVersionException(version)

        return region_iv(self.source.read(0x108, 8), iv_type)

    # regions

    def _decrypted(self, raw: ByteSource, key, iv_type: IvType) -> ByteSource:
        if self.is_decrypted:
            return raw

        return AesCtrSource(raw, key(), self.crypto_iv(iv_type))

    def raw_exheader_source(self) -> ByteSource:
        return SubSource(self.source, EXHEADER_OFFSET, EXHEADER_SIZE)

    def exheader_source(self) -> ByteSource:
        return self._decrypted(self.raw_exheader_source(), self.primary_key, IvType.EXHEADER)

    def exheader_error(self) -> str:
        if self.is_decrypted:
            return ''
        return self.primary_key_error()

    def raw_exefs_source(self) -> ByteSource:
        return SubSource(
            self.source,
            self.value_of('ExefsOffset', int) * MEDIA_UNIT,
            self.value_of('ExefsSize', int) * MEDIA_UNIT,
        )

    def primary_exefs_source(self) -> ByteSource:
        return self._decrypted(self.raw_exefs_source(), self.primary_key, IvType.EXEFS)

    def secondary_exefs_source(self) -> ByteSource:
        return self._decrypted(self.raw_exefs_source(), self.secondary_key, IvType.EXEFS)

    def exefs_error(self) -> str:
        if self.is_decrypted:
            return ''
        return self.primary_key_error() or self.secondary_key_error()

    def raw_romfs_source(self) -> ByteSource:
        return SubSource(
            self.source,
            self.value_of('RomfsOffset', int) * MEDIA_UNIT,
            self.value_of('RomfsSize', int) * MEDIA_UNIT,
        )

    def romfs_source(self) -> ByteSource:
        return self._decrypted(self.raw_romfs_source(), self.secondary_key, IvType.ROMFS)

    def romfs_error(self) -> str:
        if self.is_decrypted:
            return ''
        return self.secondary_key_error()

    def _install_error(self, region, error):
        self.install(f'{region}Error', fields.ConstField(error))
        if error:
            self.logger.warning('%s cannot be decrypted: %s', region, error)

    def install_exheader(self):
        size = self.value_of('ExheaderHashRegionSize', int)
        if not size:
            return

        error = self.exheader_error()
        self._install_error('Exheader', error)
        if error:
            return

        self.install_list({
            'ExheaderData': lambda: self.exheader_source(),
            'Exheader': lambda: Exheader(self.open('ExheaderData').value, self.secrets),
            'ExheaderHash': lambda: Sha(
                SubSource(self.open('ExheaderData').value, 0, size),
                SubSource(self.source, EXHEADER_HASH_OFFSET, 0x20)),
        })

    def install_exefs(self):
        if not self.value_of('ExefsOffset', int):
            return

        error = self.exefs_error()
        self._install_error('Exefs', error)
        if error:
            return

        self.install_list({
            'ExefsPrimaryData': lambda: self.primary_exefs_source(),
            'ExefsSecondaryData': lambda: self.secondary_exefs_source(),
            'Exefs': lambda: Exefs(
                self.open('ExefsPrimaryData').value, self.open('ExefsSecondaryData').value),
            'ExefsHash': lambda: Sha(
                SubSource(self.open('ExefsPrimaryData').value, 0,
                          self.value_of('ExefsHashRegionSize', int) * MEDIA_UNIT),
                SubSource(self.source, EXEFS_HASH_OFFSET, 0x20)),
        })

    def install_romfs(self):
        if not self.value_of('RomfsOffset', int):
            return

        error = self.romfs_error()
        self._install_error('Romfs', error)
        if error:
            return

        self.install_list({
            'RomfsData': lambda: self.romfs_source(),
            'Romfs': lambda: Romfs(self.open('RomfsData').value),
            'RomfsHash': lambda: Sha(
                SubSource(self.open('RomfsData').value, 0,
                          self.value_of('RomfsHashRegionSize', int) * MEDIA_UNIT),
                SubSource(self.source, ROMFS_HASH_OFFSET, 0x20)),
        })
