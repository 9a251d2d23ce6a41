#!/usr/bin/env python
#
#     fileops: file operations and transfers for the LCA pipeline
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
########################################################################
#
# fileops.py
#
#########################################################################

"""
fileops

Utility classes and functions for performing the file system
operations needed by the LCA pipeline workflows (creating and
unpacking archives, moving directory contents) and for uploading
output archives to remote storage.

Classes:

- TarArchive: create gzipped tar archives
- UploadTarget: extracts information from an upload link

Functions:

- mkdir: create a directory
- make_tar_archive: archive a directory excluding specific files
- extract_tar_archive: unpack a tar archive
- gunzip: decompress a gzipped file
- move_dir_contents: move contents of one directory into another
- upload_file: upload a file to a remote location
"""

########################################################################
# Imports
#########################################################################

import os
import re
import gzip
import shutil
import tarfile
import logging
from fnmatch import fnmatch
import bcftbx.utils as bcftbx_utils
from . import applications
from .exceptions import LCAPipelineError
from .exceptions import ParameterError

# Module specific logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

########################################################################
# Constants
#########################################################################

# Items never included in output archives
DEFAULT_ARCHIVE_EXCLUDES = ('*.bam','*.bai','run',)

# Nextcloud/owncloud public share links
NEXTCLOUD_SHARE_LINK = re.compile(
    r"^(https?://[^/]+(?:/.*?)??)(?:/index\.php)?/s/([A-Za-z0-9]+)/?$")

# SFTP upload locations
SFTP_LINK = re.compile(
    r"^sftp://(?:([^@/]+)@)?([^:/]+)(?::([0-9]+))?(/.*)?$")

########################################################################
# Classes
#########################################################################

class TarArchive(object):
    """
    Utility class for creating gzipped tar archive files

    Example usage:

    >>> t = TarArchive('out.tar.gz',exclude=('*.bam',))
    >>> t.add('/data/pipelinerun_v0.1.0')
    >>> t.close()  # to write the archive

    Items are stored using paths relative to the parent of
    each added directory (i.e. the archive contains the
    directory itself).
    """
    def __init__(self,tar_file,exclude=None,log=None):
        """
        Make an new tar archive instance

        Arguments:
          tar_file (str): path to the archive to be created
          exclude (list): optional, list of glob patterns;
            files or directories with names matching any
            pattern are not added
          log (PipelineLog): optional, if set then the name
            of each added item is echoed to the log
        """
        self._tar_file = os.path.abspath(tar_file)
        self._tarfile = tarfile.open(self._tar_file,'w:gz')
        self._exclude = list(exclude) if exclude else []
        self._log = log
        self._members = []

    @property
    def members(self):
        """
        List of names of the items added to the archive
        """
        return list(self._members)

    def is_excluded(self,name):
        """
        Check whether a file or directory name is excluded
        """
        return any([fnmatch(os.path.basename(name),x)
                    for x in self._exclude])

    def add(self,item,arcname=None):
        """
        Add an item (file, directory or symlink) to the archive

        Symlinks are stored as links and are never followed.
        """
        item = os.path.abspath(item)
        if arcname is None:
            arcname = os.path.basename(item)
        if self.is_excluded(item):
            return
        if os.path.islink(item):
            self.add_file(item,arcname)
        elif os.path.isdir(item):
            self.add_dir(item,arcname)
        elif os.path.isfile(item):
            self.add_file(item,arcname)
        else:
            raise LCAPipelineError("TarArchive: unknown item type for "
                                   "'%s'" % item)

    def add_file(self,filen,arcname):
        """
        Add a file (or a symlink) to the archive
        """
        self._tarfile.add(filen,arcname=arcname,recursive=False)
        self._record(arcname)

    def add_dir(self,dirn,arcname):
        """
        Recursively add a directory and its contents
        """
        self._tarfile.add(dirn,arcname=arcname,recursive=False)
        self._record("%s/" % arcname)
        for item in sorted(os.listdir(dirn)):
            self.add(os.path.join(dirn,item),
                     arcname="%s/%s" % (arcname,item))

    def _record(self,name):
        # Internal: store and report name of added member
        self._members.append(name)
        if self._log is not None:
            self._log.echo(name)
        else:
            logger.debug(name)

    def close(self):
        self._tarfile.close()

class UploadTarget(object):
    """
    Class for examining an upload link

    Upload links can be either a Nextcloud public share
    link, of the form:

    ``https://HOST[/index.php]/s/TOKEN``

    or an SFTP location, of the form:

    ``sftp://[USER@]HOST[:PORT][/PATH]``

    The following properties are available:

    - type: either 'nextcloud' or 'sftp'
    - host: the server (for Nextcloud, the base URL)
    - token: the share token (Nextcloud only)
    - user: the remote user (SFTP only; None if not set)
    - port: the port (SFTP only; None if not set)
    - path: the remote directory (SFTP only; None if not set)

    Raises ParameterError if the link isn't recognised.
    """
    def __init__(self,link):
        self._link = str(link).strip()
        self.type = None
        self.host = None
        self.token = None
        self.user = None
        self.port = None
        self.path = None
        m = NEXTCLOUD_SHARE_LINK.match(self._link)
        if m:
            self.type = 'nextcloud'
            self.host = m.group(1)
            self.token = m.group(2)
            return
        m = SFTP_LINK.match(self._link)
        if m:
            self.type = 'sftp'
            self.user = m.group(1)
            self.host = m.group(2)
            self.port = m.group(3)
            self.path = m.group(4)
            return
        raise ParameterError("Upload link '%s' not recognised (should be "
                             "a Nextcloud share link or an sftp:// "
                             "location)" % self._link)

    @property
    def webdav_url(self):
        """
        Return the WebDAV URL for uploads to a Nextcloud share
        """
        if self.type != 'nextcloud':
            return None
        return "%s/public.php/webdav" % self.host

    def __repr__(self):
        return self._link

########################################################################
# Functions
#########################################################################

def mkdir(newdir,recursive=False):
    """
    Create a directory

    Arguments:
      newdir (str): path of the directory to create
      recursive (bool): if True then also create
        intermediate parent directories
    """
    logger.debug("Creating directory %s" % newdir)
    if recursive:
        bcftbx_utils.mkdirs(newdir)
    else:
        bcftbx_utils.mkdir(newdir)

def make_tar_archive(tar_file,src_dir,exclude=DEFAULT_ARCHIVE_EXCLUDES,
                     log=None):
    """
    Make a gzipped tar archive from a directory

    Equivalent to 'tar --exclude=... -czvf TAR_FILE SRC_DIR';
    the archive contains the source directory itself (with
    paths relative to its parent).

    Arguments:
      tar_file (str): path to the archive file to create
      src_dir (str): directory to archive
      exclude (list): file and directory name patterns
        to omit from the archive (default: BAM files,
        BAM indexes and 'run' directories)
      log (PipelineLog): optional, log to echo the name
        of each archived item to

    Returns:
      String: path to the archive.
    """
    if not os.path.isdir(src_dir):
        raise LCAPipelineError("%s: not a directory, can't archive" %
                               src_dir)
    tar_file = os.path.abspath(tar_file)
    src_dir = os.path.abspath(src_dir)
    if tar_file.startswith(src_dir + os.sep):
        # Don't add the archive to itself
        exclude = list(exclude) + [os.path.basename(tar_file)]
    logger.debug("Creating archive %s from %s" % (tar_file,src_dir))
    archive = TarArchive(tar_file,exclude=exclude,log=log)
    try:
        archive.add(src_dir)
    finally:
        archive.close()
    return tar_file

def extract_tar_archive(tar_file,dest,log=None):
    """
    Unpack a tar archive into a directory

    Arguments:
      tar_file (str): path to the archive
      dest (str): directory to unpack into
      log (PipelineLog): optional, log to echo the name
        of each extracted item to

    Returns:
      List: names of the extracted members.
    """
    dest = os.path.abspath(dest)
    names = []
    with tarfile.open(tar_file,'r:*') as tf:
        members = tf.getmembers()
        for member in members:
            target = os.path.abspath(os.path.join(dest,member.name))
            if target != dest and not target.startswith(dest + os.sep):
                raise LCAPipelineError("%s: member '%s' would be "
                                       "extracted outside %s" %
                                       (tar_file,member.name,dest))
            if member.issym() or member.islnk():
                link = os.path.abspath(
                    os.path.join(os.path.dirname(target),member.linkname))
                if not link.startswith(dest + os.sep):
                    raise LCAPipelineError("%s: link '%s' points outside "
                                           "%s" % (tar_file,member.name,
                                                   dest))
        for member in members:
            tf.extract(member,path=dest)
            names.append(member.name)
            if log is not None:
                log.echo(member.name)
    return names

def gunzip(gz_file,remove=True):
    """
    Decompress a gzipped file

    Arguments:
      gz_file (str): path to the file (must end with '.gz')
      remove (bool): if True (the default) then remove the
        compressed file afterwards

    Returns:
      String: path to the decompressed file.
    """
    if not gz_file.endswith('.gz'):
        raise LCAPipelineError("%s: not a .gz file" % gz_file)
    out_file = gz_file[:-3]
    logger.debug("Decompressing %s" % gz_file)
    with gzip.open(gz_file,'rb') as fp_in:
        with open(out_file,'wb') as fp_out:
            shutil.copyfileobj(fp_in,fp_out)
    if remove:
        os.remove(gz_file)
    return out_file

def move_dir_contents(src,dest,remove_src=True):
    """
    Move all the contents of a directory into another

    Equivalent to 'mv SRC/* DEST/' followed by 'rmdir SRC'.

    Arguments:
      src (str): directory to move the contents of
      dest (str): directory to move the contents into
      remove_src (bool): if True (the default) then
        remove the (now empty) source directory
    """
    for item in sorted(os.listdir(src)):
        target = os.path.join(dest,item)
        if os.path.exists(target):
            raise LCAPipelineError("Can't move %s: %s already exists" %
                                   (item,target))
        shutil.move(os.path.join(src,item),target)
    if remove_src:
        os.rmdir(src)

def upload_file(filen,link,password=None,log=None):
    """
    Upload a file to a remote location

    For Nextcloud share links the file is uploaded using
    'curl' to the WebDAV interface of the share (with the
    share token as the user name); for SFTP locations it
    is uploaded using 'lftp'.

    Arguments:
      filen (str): path to the file to upload
      link (str): upload link (see UploadTarget)
      password (str): optional, password for the share
        or remote user
      log (PipelineLog): optional, log to send output to

    Returns:
      Integer: exit status from the upload command.
    """
    target = UploadTarget(link)
    if target.type == 'nextcloud':
        upload_cmd = applications.general.curl_upload(
            filen,
            "%s/%s" % (target.webdav_url,os.path.basename(filen)),
            user="%s:%s" % (target.token,
                            password if password else ''),
            headers=('X-Requested-With: XMLHttpRequest',))
    else:
        upload_cmd = applications.general.lftp_put(
            filen,
            target.host,
            remote_dir=target.path,
            user=target.user,
            port=target.port,
            password=password)
    logger.debug("Uploading %s to %s" % (filen,target))
    if log is not None:
        log.echo("Uploading %s to %s" % (os.path.basename(filen),target))
        status = upload_cmd.run_subprocess(tee=log)
    else:
        status = upload_cmd.run_subprocess()
    if status != 0:
        logger.error("Upload of %s failed (status %s)" % (filen,status))
    return status
