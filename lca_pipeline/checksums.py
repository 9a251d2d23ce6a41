#!/usr/bin/env python
#
#     checksums.py: generate and verify file checksums
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
########################################################################
#
# checksums.py
#
#########################################################################

"""
Functions for generating and verifying checksums:

- md5sum: MD5 checksum for a file
- read_md5_checksums: parse a file in 'md5sum' output format
- verify_md5_checksums: check files listed in a checksum file
  (equivalent of 'md5sum -c')
- write_md5_checksums: write checksums for all files under a
  directory
- bsd_sum: BSD-style 16-bit checksum and block count (as
  reported by the 'sum' program)
- check_ensembl_checksum: verify a download against an Ensembl
  CHECKSUMS file
"""

#######################################################################
# Imports
#######################################################################

import os
import logging
from fnmatch import fnmatch
from bcftbx.Md5sum import md5sum as bcftbx_md5sum

# Module specific logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

#######################################################################
# Constants
#######################################################################

MD5_OK = "OK"
MD5_FAILED = "FAILED"
MD5_ERROR = "FAILED open or read"

BSD_SUM_BLOCK_SIZE = 1024

#######################################################################
# Functions
#######################################################################

def md5sum(filen):
    """
    Return the MD5 checksum hex digest for a file
    """
    return bcftbx_md5sum(filen)

def read_md5_checksums(chksum_file):
    """
    Read checksums from a file in 'md5sum' format

    Each non-blank line should consist of an MD5 digest
    followed by whitespace and then the file name (which
    can be prefixed with '*' to indicate binary mode).

    Arguments:
      chksum_file (str): path to the checksum file

    Returns:
      List: list of (filename,checksum) tuples in the
        order they appear in the file.
    """
    checksums = []
    with open(chksum_file,'rt') as fp:
        for line in fp:
            line = line.rstrip('\n')
            if not line.strip() or line.startswith('#'):
                continue
            try:
                chksum,filen = line.split(None,1)
            except ValueError:
                logger.warning("%s: ignoring badly formatted line: '%s'" %
                               (chksum_file,line))
                continue
            filen = filen.strip()
            if filen.startswith('*'):
                filen = filen[1:]
            checksums.append((filen,chksum.lower()))
    return checksums

def verify_md5_checksums(chksum_file,base_dir=None,log=None):
    """
    Verify files against the checksums in a file

    Reports the status of each file in the same format as
    'md5sum -c', e.g. 'cellranger/sample1/barcodes.tsv: OK'.

    Arguments:
      chksum_file (str): path to the checksum file
      base_dir (str): optional, directory that relative
        file names are resolved against (defaults to the
        current directory)
      log (PipelineLog): optional, log to echo the results
        to (otherwise they are printed)

    Returns:
      List: list of (filename,status) tuples for files
        which failed verification (empty if all files
        passed).
    """
    failures = []
    for filen,chksum in read_md5_checksums(chksum_file):
        path = filen
        if base_dir is not None and not os.path.isabs(path):
            path = os.path.join(base_dir,path)
        try:
            if md5sum(path) == chksum:
                status = MD5_OK
            else:
                status = MD5_FAILED
        except IOError:
            status = MD5_ERROR
        msg = "%s: %s" % (filen,status)
        if log is not None:
            log.echo(msg)
        else:
            print(msg)
        if status != MD5_OK:
            failures.append((filen,status))
    if failures:
        msg = "WARNING: %d of %d checksums did NOT match" % \
              (len(failures),len(read_md5_checksums(chksum_file)))
        if log is not None:
            log.echo(msg)
        else:
            print(msg)
    return failures

def write_md5_checksums(dirn,out_file,exclude=None):
    """
    Write MD5 checksums for all files under a directory

    Files are listed by their path relative to the parent
    of 'dirn' (so that the listing starts with the directory
    name) and are sorted by path.

    Arguments:
      dirn (str): directory to generate checksums for
      out_file (str): path of the output checksum file
      exclude (list): optional, list of file name patterns
        to omit from the output

    Returns:
      Integer: number of checksums written.
    """
    dirn = os.path.normpath(dirn)
    parent = os.path.dirname(os.path.abspath(dirn))
    files = []
    for d,subdirs,filenames in os.walk(dirn):
        for f in filenames:
            if exclude and any([fnmatch(f,x) for x in exclude]):
                continue
            files.append(os.path.join(d,f))
    nchksums = 0
    with open(out_file,'wt') as fp:
        for f in sorted(files,key=lambda x: os.path.relpath(
                os.path.abspath(x),parent)):
            fp.write("%s  %s\n" % (md5sum(f),
                                   os.path.relpath(os.path.abspath(f),
                                                   parent)))
            nchksums += 1
    return nchksums

def bsd_sum(filen):
    """
    Calculate BSD-style checksum for a file

    Implements the algorithm used by the 'sum' program
    (default BSD mode): a 16-bit checksum with right
    rotation, and the size in 1K blocks.

    Arguments:
      filen (str): path to the file

    Returns:
      Tuple: (checksum,blocks) as integers.
    """
    checksum = 0
    nbytes = 0
    with open(filen,'rb') as fp:
        while True:
            buf = fp.read(65536)
            if not buf:
                break
            nbytes += len(buf)
            for b in buf:
                checksum = (checksum >> 1) + ((checksum & 1) << 15)
                checksum = (checksum + b) & 0xffff
    blocks = (nbytes + BSD_SUM_BLOCK_SIZE - 1)//BSD_SUM_BLOCK_SIZE
    return (checksum,blocks)

def check_ensembl_checksum(filen,checksums_file,name):
    """
    Verify a downloaded file against an Ensembl CHECKSUMS file

    Ensembl CHECKSUMS files contain lines of the form
    'CHECKSUM BLOCKS FILENAME' as output by the 'sum'
    program.

    Arguments:
      filen (str): path to the downloaded file
      checksums_file (str): path to the CHECKSUMS file
      name (str): name of the file as it appears in
        the CHECKSUMS file

    Returns:
      Boolean: True if the checksum for the file matches
        the entry for 'name', False otherwise.
    """
    checksum,blocks = bsd_sum(filen)
    with open(checksums_file,'rt') as fp:
        for line in fp:
            fields = line.split()
            if len(fields) != 3 or fields[2] != name:
                continue
            try:
                if int(fields[0]) == checksum and int(fields[1]) == blocks:
                    return True
            except ValueError:
                logger.warning("%s: bad checksum line: '%s'" %
                               (checksums_file,line.rstrip()))
    return False
