class NcchViewException(Exception):
    '''Base class to extend in order to throw exception in ncchview.

    It takes an optional argument that represents the chain of fields that
    were being evaluated when the exception was raised, outermost first.
    '''

    def __init__(self, *args, chain=None):
        self.chain = chain if chain is not None else []
        super().__init__(*args)

    def __str__(self):
        msg = super().__str__()
        if not self.chain:
            return msg

        return '%s (while evaluating %s)' % (msg, '.'.join(self.chain))


class FieldNotFoundException(NcchViewException, KeyError):
    pass


class TypeMismatchException(NcchViewException, TypeError):
    pass


class CyclicDependencyException(NcchViewException):
    '''A field depends, directly or not, on itself.'''
    pass


class UnpackException(NcchViewException):
    pass


class OutOfRangeException(NcchViewException, IndexError):
    pass


class IoException(NcchViewException):
    pass


class SecretFormatException(NcchViewException, ValueError):
    pass


class UnrecoverableException(NcchViewException):
    '''This is useful when is not possible to let an unknown value
    slip through the parsing.'''
    pass


class UnknownCryptoMethodException(UnrecoverableException):

    def __init__(self, value, chain=None):
        self.value = value
        super().__init__('unknown crypto method 0x%02x' % value, chain=chain)


class UnsupportedIvVersionException(UnrecoverableException):

    def __init__(self, version, chain=None):
        self.version = version
        super().__init__('NCCH version %d uses an unsupported IV scheme' % version, chain=chain)
