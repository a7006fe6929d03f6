'''
Keys and the AES key scrambler of the console.

The hardware derives the key actually used by AES (the "normal key") from
two halves, KeyX and KeyY, and a constant C:

    normal = ROL128((ROL128(KeyX, 2) ^ KeyY) + C, 87)

with every 128-bit value interpreted big-endian and the sum taken modulo
2^128. See <https://www.3dbrew.org/wiki/AES_Registers#Keyslots>.
'''
import logging

from bitstring import BitArray

from ..enum import CryptoMethod
from ..exceptions import UnknownCryptoMethodException


logger = logging.getLogger(__name__)

KEY_SIZE = 0x10

# names of the secrets looked up in the secret provider
K_SEC_KEY2C_X = 'slot0x2CKeyX'
K_SEC_KEY25_X = 'slot0x25KeyX'
K_SEC_KEY18_X = 'slot0x18KeyX'
K_SEC_KEY1B_X = 'slot0x1BKeyX'
K_SEC_AES_CONST = 'generator'
K_SEC_PUBKEY_NCSD_CFA = 'ncsdCfaPublicKey'
K_SEC_PUBKEY_EXHEADER = 'exheaderPublicKey'

# KeyX used by the secondary key for each crypto method
CRYPTO_METHOD_KEY_X = {
    CryptoMethod.ORIGINAL: K_SEC_KEY2C_X,
    CryptoMethod.SECURE2:  K_SEC_KEY25_X,
    CryptoMethod.SECURE3:  K_SEC_KEY18_X,
    CryptoMethod.SECURE4:  K_SEC_KEY1B_X,
}

# fixed-key titles use an all-zero key, except system titles
ZERO_KEY = bytes(KEY_SIZE)
FIXED_SYSTEM_KEY = bytes.fromhex('527CE630A9CA305F3696F3CDE954194B')
SYSTEM_TITLE_FLAG = 0x10 << 32


def _as_bits(name, key: bytes) -> BitArray:
    if len(key) != KEY_SIZE:
        raise ValueError('%s must be %d bytes, got %d' % (name, KEY_SIZE, len(key)))
    return BitArray(bytes=key)


def scramble(key_x: bytes, key_y: bytes, key_c: bytes) -> bytes:
    '''Generate the normal key from KeyX, KeyY and the constant C.'''
    x = _as_bits('KeyX', key_x)
    y = _as_bits('KeyY', key_y)
    c = _as_bits('KeyC', key_c)

    x.rol(2)
    x ^= y
    key = BitArray(uint=(x.uint + c.uint) % (1 << 128), length=128)
    key.rol(87)

    return key.bytes


def fixed_key(program_id: int) -> bytes:
    '''The normal key of fixed-key crypto.'''
    if program_id & SYSTEM_TITLE_FLAG:
        return FIXED_SYSTEM_KEY
    return ZERO_KEY


def crypto_method_key_x(method: int) -> str:
    '''Name of the KeyX secret used by the secondary key for method.'''
    try:
        return CRYPTO_METHOD_KEY_X[CryptoMethod(method)]
    except ValueError:
        raise UnknownCryptoMethodException(method)


def is_valid_key(key: bytes) -> bool:
    '''A secret that is missing and one with the wrong size are the same.'''
    return len(key) == KEY_SIZE
