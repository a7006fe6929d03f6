from .ncch import Ncch
from .exheader import Exheader
from .exefs import Exefs
from .romfs import Romfs
