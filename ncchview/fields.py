"""
A Field is the description of how a named value of a container is derived:
most of them simply read a fixed-width value at a fixed offset of the
container's source, others compute it from other fields.

A field never holds a value, the container stores the node produced by
derive() the first time the field is opened.
"""
import logging
import struct
from enum import Enum

from .enum import Endianess
from .exceptions import UnpackException
from .meta import FieldBase
from .streams import SubSource


class Field(FieldBase):
    """Base class to subclass from"""

    def __init__(self, name=None):
        super().__init__()
        self.logger = logging.getLogger(__name__)
        self.name = name

    def __repr__(self):
        return '<%s(%s)>' % (self.__class__.__name__, self.name)

    def derive(self, container):
        '''Return the node (or the plain value) for this field of container.'''
        raise NotImplementedError(f"method {self.__class__.__name__}.derive() not implemented")


class StructField(Field):
    """
    Mimic the behaviour of the struct module unpacking integers from bytes.

    The "enum" argument converts the integer into a member of the given
    subclass of enum.Enum; an integer without a member is an error.
    """

    def __init__(self, format, offset, endianess=Endianess.LITTLE_ENDIAN, enum=None, **kw):
        super().__init__(**kw)
        self.format = format
        self.offset = offset
        self.endianess = endianess
        self.enum = enum

    def __repr__(self):
        return '<%s(%s, 0x%x)>' % (self.__class__.__name__, self.format, self.offset)

    def get_format(self):
        return '%s%s' % ('<' if self.endianess == Endianess.LITTLE_ENDIAN else '>', self.format)

    @property
    def size(self):
        return struct.calcsize(self.get_format())

    def _unpack_enum(self, value: int) -> Enum:
        try:
            return self.enum(value)
        except ValueError as e:
            self.logger.error(e)
            raise UnpackException('enum %s has no element with value 0x%x' % (self.enum.__name__, value))

    def derive(self, container):
        raw = container.source.read(self.offset, self.size)
        value = struct.unpack(self.get_format(), raw)[0]
        if self.enum:
            value = self._unpack_enum(value)

        return value


class StringField(Field):
    """Represent a contiguous chunk of n bytes."""

    def __init__(self, offset, n, **kw):
        super().__init__(**kw)
        self.offset = offset
        self.length = n

    def __len__(self):
        return self.length

    def derive(self, container):
        return container.source.read(self.offset, self.length)


class TextField(StringField):
    """Like StringField but decoded, NUL padding removed."""

    def __init__(self, offset, n, encoding='ascii', **kw):
        super().__init__(offset, n, **kw)
        self.encoding = encoding

    def derive(self, container):
        raw = super().derive(container)
        return raw.split(b'\x00', 1)[0].decode(self.encoding, errors='replace')


class SourceField(Field):
    """A window of the container's source, handed out as a ByteSource."""

    def __init__(self, offset, size, **kw):
        super().__init__(**kw)
        self.offset = offset
        self.size = size

    def derive(self, container):
        return SubSource(container.source, self.offset, self.size)


class FlagField(Field):
    """True when any bit of mask is set in the integer field named field_name."""

    def __init__(self, field_name, mask, **kw):
        super().__init__(**kw)
        self.field_name = field_name
        self.mask = mask

    def derive(self, container):
        return (container.open(self.field_name).value_as(int) & self.mask) != 0


class DerivedField(Field):
    """Whatever func(container) returns."""

    def __init__(self, func, **kw):
        super().__init__(**kw)
        self.func = func

    def derive(self, container):
        return self.func(container)


class ConstField(Field):

    def __init__(self, value, **kw):
        super().__init__(**kw)
        self.value = value

    def derive(self, container):
        return self.value
