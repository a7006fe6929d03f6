from enum import Enum, IntEnum, auto


class Endianess(Enum):
    LITTLE_ENDIAN = auto()
    BIG_ENDIAN    = auto()


class SeedStatus(Enum):
    '''Whether the seed needed by seed crypto is available and correct.'''
    NOT_NEEDED = auto()
    FOUND      = auto()
    NOT_FOUND  = auto()
    INCORRECT  = auto()


class IvType(IntEnum):
    '''Tag at byte 8 of the counter of each encrypted region.'''
    EXHEADER = 1
    EXEFS    = 2
    ROMFS    = 3


class CryptoMethod(IntEnum):
    '''Selects the KeyX used by the secondary key.'''
    ORIGINAL = 0x00
    SECURE2  = 0x01
    SECURE3  = 0x0A
    SECURE4  = 0x0B
