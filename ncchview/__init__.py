"""
# ncchview: lazy inspection of NCCH containers.

An opened file is a tree of named nodes; nothing is read, decrypted or
verified until the corresponding field is opened:

    from ncchview import Ncch, SecretDatabase

    with Ncch('game.cxi', secrets=SecretDatabase.from_file('aes_keys.txt')) as ncch:
        ncch.ProgramId.value          # read from the header
        ncch.error('Exheader')        # '' when the extended header can be decrypted
        ncch['Exheader']['ApplicationTitle'].value
        ncch['Signature'].value       # True when the header signature verifies

The layers, from the bottom

 1. streams: byte sources, views over other byte sources (windows, patches,
    AES-CTR decryption)
 2. core and fields: containers of lazily derived, memoized fields
 3. containers: the NCCH format and its sub-containers
"""
from .core import Container, Node, Value
from .containers.ncch import Ncch
from .enum import SeedStatus
from .secrets import SecretDatabase, SeedDatabase
