#!/usr/bin/env python3
import sys
import os
import logging

from ncchview import Ncch, SecretDatabase, SeedDatabase
from ncchview.streams import DiskSource

if 'DEBUG' in os.environ:
    logging.basicConfig()
    logger = logging.getLogger('ncchview')
    logger.setLevel(logging.DEBUG)


def usage(progname):
    print('usage: %s <ncch file> [<secrets file> [<seeddb file>]]' % progname)
    sys.exit(1)


def dump_header(ncch):
    print(f'''NCCH Header:
  Magic:                             {ncch.Magic.value!r}
  Content size:                      {ncch.ContentSize.value} (media units)
  Partition id:                      {ncch.PartitionId.value:016x}
  Program id:                        {ncch.ProgramId.value:016x}
  Product code:                      {ncch.ProductCode.value}
  Maker code:                        {ncch.MakerCode.value:04x}
  Version:                           {ncch.Version.value}
  Crypto method:                     0x{ncch.CryptoMethod.value:02x}
  Platform:                          {ncch.Platform.value}
  Content type:                      {ncch.ContentType.value}{" (data)" if ncch.IsData.value else ""}{" (executable)" if ncch.IsExecutable.value else ""}
  Fixed key crypto:                  {ncch.IsFixedKeyCrypto.value}
  No RomFS mount:                    {ncch.IsNoRomfsMount.value}
  No crypto:                         {ncch.IsNoCrypto.value}{" (forced)" if ncch.IsForceNoCrypto.value else ""}
  Seed crypto:                       {ncch.IsSeedCrypto.value} ({ncch.SeedStatus.value.name})''')


def dump_regions(ncch):
    print('Regions:')
    print(f'  {"Name":<10} {"Offset":>10} {"Size":>10} {"Hashed":>10}  Status')
    for name in ('Plain', 'Logo', 'Exefs', 'Romfs'):
        prefix = name if name in ('Exefs', 'Romfs') else f'{name}Region'
        offset = ncch.value_of(f'{prefix}Offset')
        if not offset:
            continue
        size = ncch.value_of(f'{prefix}Size')
        hashed = ncch.value_of(f'{name}HashRegionSize') if f'{name}HashRegionSize' in ncch else 0
        print(f'  {name:<10} 0x{offset * 0x200:08x} 0x{size * 0x200:08x} 0x{hashed * 0x200:08x}  {status(ncch, name)}')


def status(ncch, name):
    error = ncch.error(name)
    if error:
        return f'cannot decrypt: {error}'
    if f'{name}Hash' in ncch:
        return f'hash {ncch[name + "Hash"]}'
    return ''


def dump_exheader(ncch):
    if 'ExheaderError' not in ncch:
        return

    print(f'Extended Header: {status(ncch, "Exheader")}')
    if ncch.error('Exheader'):
        return

    exheader = ncch.Exheader
    print(f'''  Title:                             {exheader.ApplicationTitle.value}
  Program id:                        {exheader.ProgramId.value:016x}
  Text:                              0x{exheader.TextAddress.value:08x} 0x{exheader.TextSize.value:08x}
  Read-only:                         0x{exheader.RoAddress.value:08x} 0x{exheader.RoSize.value:08x}
  Data:                              0x{exheader.DataAddress.value:08x} 0x{exheader.DataSize.value:08x}
  Stack size:                        0x{exheader.StackSize.value:x}
  BSS size:                          0x{exheader.BssSize.value:x}
  Save data size:                    0x{exheader.SaveDataSize.value:x}
  Dependencies:                      {len(exheader.Dependencies.value)}
  Access descriptor signature:       {exheader.AccessDescVerification}''')


def dump_exefs(ncch):
    if 'Exefs' not in ncch:
        return

    exefs = ncch.Exefs
    print('ExeFS:')
    for name in exefs.Entries.value:
        if exefs.error(name):
            print(f'  {name:<10} {exefs.error(name)}')
            continue
        print(f'  {name:<10} 0x{exefs[name].value.size:08x} hash {exefs[name + "Hash"]}')


def dump_signature(ncch):
    print(f'Signature:                           {ncch.Signature}')
    if not ncch.Signature.value:
        print(f'Signature (no-crypto flag cleared):  {ncch.SignaturePatched}')


if __name__ == '__main__':
    if len(sys.argv) < 2:
        usage(sys.argv[0])

    secrets = SecretDatabase.from_file(sys.argv[2]) if len(sys.argv) > 2 else None
    seeds = SeedDatabase.from_file(sys.argv[3]) if len(sys.argv) > 3 else None

    with DiskSource(sys.argv[1]) as source:
        ncch = Ncch(source, secrets=secrets, seeds=seeds)

        dump_header(ncch)
        dump_regions(ncch)
        dump_exheader(ncch)
        dump_exefs(ncch)
        dump_signature(ncch)
