'''
Synthetic NCCH containers.

The layout of the container built by build_ncch()

    0x0000 signature + header
    0x0200 extended header
    0x0A00 ExeFS: header, ".code", "icon"
    0x1000 RomFS: IVFC header, master hash, level 3 at 0x200

encrypted with keys derived from made-up secrets: the key scrambler is
reimplemented here on plain integers.
'''
import struct
from hashlib import sha256

import pytest
from Cryptodome.Cipher import AES
from Cryptodome.Hash import SHA256
from Cryptodome.PublicKey import RSA
from Cryptodome.Signature import pkcs1_15
from Cryptodome.Util import Counter

from ncchview import SecretDatabase, SeedDatabase


KEY_C = bytes.fromhex('1FF9E9AAC5FE0408024591DC5D52768A')
KEYS_X = {
    0x00: ('slot0x2CKeyX', bytes(range(0x10, 0x20))),
    0x01: ('slot0x25KeyX', bytes(range(0x20, 0x30))),
    0x0A: ('slot0x18KeyX', bytes(range(0x30, 0x40))),
    0x0B: ('slot0x1BKeyX', bytes(range(0x40, 0x50))),
}
PARTITION_ID = 0x0004000000ABCD00
PROGRAM_ID = 0x0004000000ABCD00
SYSTEM_PROGRAM_ID = 0x0004001000022000

MEDIA_UNIT = 0x200
EXHEADER_OFFSET = 0x200
EXEFS_OFFSET = 0xA00
ROMFS_OFFSET = 0x1000
TOTAL_SIZE = 0x1400

EXEFS_CODE = bytes(range(256)) * 2
EXEFS_ICON = b'ICON' * 0x80


def rol128(value, n):
    mask = (1 << 128) - 1
    return ((value << n) | (value >> (128 - n))) & mask


def normal_key(key_x, key_y, key_c=KEY_C):
    x, y, c = (int.from_bytes(_, 'big') for _ in (key_x, key_y, key_c))
    key = rol128((rol128(x, 2) ^ y) + c & ((1 << 128) - 1), 87)
    return key.to_bytes(16, 'big')


def ctr_encrypt(key, iv, data):
    counter = Counter.new(128, initial_value=int.from_bytes(iv, 'big'))
    return AES.new(key, AES.MODE_CTR, counter=counter).encrypt(data)


def ncch_iv(partition_id, tag):
    return struct.pack('>QB7x', partition_id, tag)


def sign(key, data):
    return pkcs1_15.new(key).sign(SHA256.new(data))


def modulus(key):
    return key.n.to_bytes(0x100, 'big')


class Built(object):
    '''A built container and the plaintexts and keys that went into it.'''

    def __init__(self, data, exheader, exefs, romfs, key_y, primary, secondary):
        self.data = data
        self.exheader = exheader
        self.exefs = exefs
        self.romfs = romfs
        self.key_y = key_y
        self.primary = primary
        self.secondary = secondary


def build_exheader(rsa_key):
    exheader = bytearray(0x800)
    exheader[0x000:0x008] = b'GameTest'
    exheader[0x00D] = 0x02
    struct.pack_into('<IIII', exheader, 0x010, 0x00100000, 2, 0x2000, 0x1000)
    struct.pack_into('<III', exheader, 0x020, 0x00102000, 1, 0x800)
    struct.pack_into('<IIII', exheader, 0x030, 0x00103000, 1, 0x400, 0x300)
    struct.pack_into('<QQ', exheader, 0x040, 0x0004013000001002, 0x0004013000001502)
    struct.pack_into('<QQ', exheader, 0x1C0, 0x80000, PROGRAM_ID)
    struct.pack_into('<QI', exheader, 0x200, PROGRAM_ID, 2)
    exheader[0x500:0x600] = modulus(rsa_key)
    struct.pack_into('<Q', exheader, 0x600, PROGRAM_ID)
    exheader[0x400:0x500] = sign(rsa_key, bytes(exheader[0x500:0x800]))
    return bytes(exheader)


def build_exefs():
    exefs = bytearray(0x600)
    struct.pack_into('<8sII', exefs, 0x00, b'.code', 0x000, len(EXEFS_CODE))
    struct.pack_into('<8sII', exefs, 0x10, b'icon', 0x200, len(EXEFS_ICON))
    # hashes are stored last entry first
    exefs[0xC0 + 9 * 0x20:0xC0 + 10 * 0x20] = sha256(EXEFS_CODE).digest()
    exefs[0xC0 + 8 * 0x20:0xC0 + 9 * 0x20] = sha256(EXEFS_ICON).digest()
    exefs[0x200:0x400] = EXEFS_CODE
    exefs[0x400:0x600] = EXEFS_ICON
    return bytes(exefs)


def build_romfs():
    romfs = bytearray(0x400)
    struct.pack_into('<4sII', romfs, 0x00, b'IVFC', 0x10000, 0x20)
    # level 3: logical offset, hash data size, block size (log2)
    struct.pack_into('<QQI', romfs, 0x0C + 2 * 0x18, 0, 0x100, 9)
    romfs[0x200:0x300] = b'ROMFS LEVEL3 ' * 19 + b'ROMFS LEVEL3 '[:9]
    return bytes(romfs)


@pytest.fixture(scope='session')
def rsa_key():
    return RSA.generate(2048)


@pytest.fixture
def secrets(rsa_key):
    database = SecretDatabase({
        'generator': KEY_C,
        'ncsdCfaPublicKey': modulus(rsa_key),
        'exheaderPublicKey': modulus(rsa_key),
    })
    for name, key_x in KEYS_X.values():
        database.set(name, key_x)
    return database


@pytest.fixture
def seed():
    return bytes.fromhex('00112233445566778899AABBCCDDEEFF')


@pytest.fixture
def seeds(seed):
    return SeedDatabase({PROGRAM_ID: seed})


@pytest.fixture
def build_ncch(rsa_key):
    '''Factory of synthetic containers, see Built for what it returns.'''

    def _build(
            crypto_method=0x00,
            seed=None,
            seed_verifier=None,
            fixed_key=False,
            no_crypto=False,
            plaintext=False,
            program_id=PROGRAM_ID,
            version=0,
            with_exheader=True,
            signed_before_flag=False):
        exheader = build_exheader(rsa_key)
        exefs = build_exefs()
        romfs = build_romfs()

        flags = 0x00
        if fixed_key:
            flags |= 0x01
        if seed is not None:
            flags |= 0x20

        header = bytearray(0x100)
        struct.pack_into('<4sIQHH', header, 0x00, b'NCCH', TOTAL_SIZE // MEDIA_UNIT, PARTITION_ID, 0x3030, version)
        if seed is not None:
            verifier = seed_verifier or sha256(seed + struct.pack('<Q', program_id)).digest()[:4]
            header[0x14:0x18] = verifier
        struct.pack_into('<Q', header, 0x18, program_id)
        header[0x50:0x5A] = b'CTR-P-TEST'
        if with_exheader:
            header[0x60:0x80] = sha256(exheader[:0x400]).digest()
            struct.pack_into('<I', header, 0x80, 0x400)
        header[0x8B] = crypto_method
        header[0x8C] = 1
        header[0x8D] = 0x03 if with_exheader else 0x01
        header[0x8F] = flags
        struct.pack_into('<III', header, 0xA0, EXEFS_OFFSET // MEDIA_UNIT, len(exefs) // MEDIA_UNIT, 1)
        struct.pack_into('<III', header, 0xB0, ROMFS_OFFSET // MEDIA_UNIT, len(romfs) // MEDIA_UNIT, 1)
        header[0xC0:0xE0] = sha256(exefs[:0x200]).digest()
        header[0xE0:0x100] = sha256(romfs[:0x200]).digest()

        if no_crypto and signed_before_flag:
            signature = sign(rsa_key, bytes(header))
            header[0x8F] |= 0x04
        else:
            if no_crypto:
                header[0x8F] |= 0x04
            signature = sign(rsa_key, bytes(header))

        key_y = signature[:0x10]
        if fixed_key:
            primary = secondary = (
                bytes.fromhex('527CE630A9CA305F3696F3CDE954194B') if program_id & (0x10 << 32) else bytes(0x10))
        else:
            primary = normal_key(KEYS_X[0x00][1], key_y)
            secondary_y = sha256(key_y + seed).digest()[:0x10] if seed is not None else key_y
            secondary = normal_key(KEYS_X[crypto_method][1], secondary_y)

        if no_crypto or plaintext:
            stored_exheader, stored_exefs, stored_romfs = exheader, exefs, romfs
        else:
            stored_exheader = ctr_encrypt(primary, ncch_iv(PARTITION_ID, 1), exheader)
            exefs_primary = ctr_encrypt(primary, ncch_iv(PARTITION_ID, 2), exefs)
            exefs_secondary = ctr_encrypt(secondary, ncch_iv(PARTITION_ID, 2), exefs)
            # header and icon with the primary key, .code with the secondary one
            stored_exefs = exefs_primary[:0x200] + exefs_secondary[0x200:0x400] + exefs_primary[0x400:]
            stored_romfs = ctr_encrypt(secondary, ncch_iv(PARTITION_ID, 3), romfs)

        data = bytearray(TOTAL_SIZE)
        data[0x000:0x100] = signature
        data[0x100:0x200] = header
        if with_exheader:
            data[EXHEADER_OFFSET:EXHEADER_OFFSET + 0x800] = stored_exheader
        data[EXEFS_OFFSET:EXEFS_OFFSET + len(exefs)] = stored_exefs
        data[ROMFS_OFFSET:ROMFS_OFFSET + len(romfs)] = stored_romfs

        return Built(bytes(data), exheader, exefs, romfs, key_y, primary, secondary)

    return _build
