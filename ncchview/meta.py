import logging


logger = logging.getLogger(__name__)


class FieldDescriptor(object):
    """Wrapper around field access of a Container related class: reading
    the attribute opens the field on the instance."""

    def __init__(self, field_instance: "Field", field_name: str):
        self.logger = logging.getLogger(f"{self.__module__}.{self.__class__.__name__}")
        self.field = field_instance
        self.field.name = field_name

    def __get__(self, instance, type=None):
        if instance is None:
            return self.field

        self.logger.debug("__get__ from %s for field named '%s'", instance.__class__.__name__, self.field.name)
        return instance.open(self.field.name)

    def __set__(self, instance, value):
        raise AttributeError(f"field '{self.field.name}' is read-only, use install() to replace it")


class FieldBase(object):

    def contribute_to_container(self, cls, name):
        if name in cls.__dict__:
            raise AttributeError(f'field {name} is already present in class {cls.__name__}')

        cls._meta.fields[name] = self
        setattr(cls, name, FieldDescriptor(self, name))


class Meta(object):
    """Class containing metadata about the abstraction: the declared fields
    in declaration order."""

    def __init__(self):
        self.fields = {}


class MetaContainer(type):

    def __new__(cls, names, bases, attrs):
        '''Collect the declared fields, Django style, into _meta.'''
        module = attrs.pop('__module__')
        classcell = attrs.pop('__classcell__', None)

        new_attrs = {
            '__module__': module,
        }
        if '__qualname__' in attrs:
            new_attrs['__qualname__'] = attrs.pop('__qualname__')
        if classcell is not None:
            new_attrs['__classcell__'] = classcell
        new_cls = super(MetaContainer, cls).__new__(cls, names, bases, new_attrs)

        new_cls._meta = Meta()

        # handle inheritance
        parents = [_ for _ in bases if isinstance(_, MetaContainer)]
        for parent in parents:
            new_cls._meta.fields.update(parent._meta.fields)

        for obj_name, obj in attrs.items():
            new_cls.add_to_class(obj_name, obj)

        return new_cls

    def add_to_class(cls, name, value):
        if hasattr(value, 'contribute_to_container'):
            logger.debug("collecting field '%s' of %s", name, cls.__name__)
            value.contribute_to_container(cls, name)
        else:
            setattr(cls, name, value)
