'''
Nodes checking the authenticity of a range of bytes against the digest or
the signature stored somewhere else in the file.

A mismatch is not an error: the value of the node is just False. The result
is computed once and kept by the node itself.
'''
import hashlib

from Cryptodome.Hash import SHA256
from Cryptodome.PublicKey import RSA
from Cryptodome.Signature import pkcs1_15

from ..core import Node
from ..streams import ByteSource


RSA_PUBLIC_EXPONENT = 0x10001


class Sha(Node):
    """SHA-256 of data compared with the digest stored in hash."""

    def __init__(self, data: ByteSource, hash: ByteSource):
        self.data = data
        self.hash = hash
        self._digest = None

    def __repr__(self):
        return '<%s(%s)>' % (self.__class__.__name__, 'valid' if self.value else 'invalid')

    def __str__(self):
        return 'valid' if self.value else 'invalid'

    @property
    def expected(self) -> bytes:
        return self.hash.read_all()

    @property
    def digest(self) -> bytes:
        if self._digest is None:
            self._digest = hashlib.sha256(self.data.read_all()).digest()
        return self._digest

    def _get_value(self) -> bool:
        return self.digest == self.expected


class Rsa(Node):
    """RSASSA-PKCS1-v1_5 (SHA-256) signature of data; key holds the
    big-endian modulus, the public exponent is always 65537."""

    def __init__(self, data: ByteSource, signature: ByteSource, key: ByteSource):
        self.data = data
        self.signature = signature
        self.key = key
        self._valid = None

    def __repr__(self):
        return '<%s(%s)>' % (self.__class__.__name__, 'valid' if self.value else 'invalid')

    def __str__(self):
        return 'valid' if self.value else 'invalid'

    def _get_value(self) -> bool:
        if self._valid is None:
            self._valid = self.verify()
        return self._valid

    def verify(self) -> bool:
        modulus = self.key.read_all()
        if not modulus:
            return False

        try:
            public_key = RSA.construct((int.from_bytes(modulus, 'big'), RSA_PUBLIC_EXPONENT))
            pkcs1_15.new(public_key).verify(SHA256.new(self.data.read_all()), self.signature.read_all())
        except ValueError:
            return False

        return True
