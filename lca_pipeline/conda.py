#!/usr/bin/env python
#
#     conda.py: utilities for managing conda environments
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
"""
Module providing utility classes and functions to help with managing
``conda`` environments:

- CondaWrapper: wrapper for ``conda``, including environment creation
  and running commands inside an activated environment
- CondaWrapperError: base class for exceptions from CondaWrapper
- CondaCreateEnvError: exception for errors when creating environments

"""

######################################################################
# Imports
######################################################################

import os
import tempfile
import logging
from bcftbx.JobRunner import ResourceLock
from bcftbx.utils import find_program
from .command import Command
from .applications import conda as conda_apps
from .utils import version_test
from .exceptions import LCAPipelineError

# Module specific logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

######################################################################
# Module constants
######################################################################

# Default channels for conda dependency resolution
DEFAULT_CONDA_CHANNELS = (
    'conda-forge',
    'bioconda',
)

# Name of the environment used by the pipeline
LCA_CONDA_ENV_NAME = "cr3-velocyto-scanpy"

# Pinned packages installed into the pipeline environment
LCA_CONDA_PACKAGES = (
    'cellranger=3.1.0=0',
    'scanpy=1.4.4.post1=py_3',
    'velocyto.py=0.17.17=py36hc1659b7_0',
    'samtools=1.10=h9402c20_2',
    'conda=4.8.2=py36_0',
    'nextflow=19.10',
    'java-jdk=8.0.112',
)

# First conda version supporting 'conda activate'
CONDA_ACTIVATE_MIN_VERSION = "4.4"

######################################################################
# Classes
######################################################################

class CondaWrapper(object):
    """
    Class for querying conda and managing environments

    Example usage:

    >>> conda = CondaWrapper(env_dir='/data/lca/envs',
    ...                      channels=('conda-forge','bioconda'))
    >>> env = conda.create_env('cr3-velocyto-scanpy',
    ...                        *LCA_CONDA_PACKAGES)
    >>> conda.run_in_env(Command('nextflow','-version'),env)
    """
    def __init__(self,conda=None,env_dir=None,channels=None):
        """
        Create a new CondaWrapper instance

        Arguments:
          conda (str): path to conda executable
          env_dir (str): optional, non-default directory
            for conda environments
          channels (list): optional, list of non-default
            channels to use for installing packages
        """
        # Conda executable
        if conda is None:
            conda = find_program("conda")
        self._conda = conda
        if self._conda:
            self._conda = os.path.abspath(self._conda)
            conda_dir = os.sep.join(self._conda.split(os.sep)[:-2])
        else:
            conda_dir = None
        self._conda_dir = conda_dir
        # Default location for environments
        if env_dir:
            env_dir = os.path.abspath(env_dir)
        elif self._conda_dir:
            env_dir = os.path.join(self._conda_dir,'envs')
        self._env_dir = env_dir
        # Channels
        if channels:
            channels = [c for c in channels]
        elif channels is None:
            channels = list(DEFAULT_CONDA_CHANNELS)
        else:
            channels = list()
        self._channels = channels
        # Base directory (looked up on demand)
        self._base_dir = None
        # Lock for blocking operations
        self._lock_manager = ResourceLock()

    @property
    def conda(self):
        """
        Path to conda executable
        """
        return self._conda

    @property
    def version(self):
        """
        Return the conda version
        """
        if not self.is_installed:
            return None
        version_cmd = Command(self.conda,'--version')
        output = version_cmd.subprocess_check_output()[1]
        try:
            return output.split()[1].strip()
        except IndexError:
            logger.warning("Unable to get conda version")

    @property
    def is_installed(self):
        """
        Check whether conda is installed
        """
        if self.conda:
            return os.path.exists(self.conda)
        return False

    @property
    def env_dir(self):
        """
        Path to the directory for conda environments
        """
        return self._env_dir

    @property
    def channels(self):
        """
        List of channels used when creating environments
        """
        return self._channels

    @property
    def list_envs(self):
        """
        Return a list of environments in the 'envs' directory
        """
        if self._env_dir and os.path.exists(self._env_dir):
            return sorted(os.listdir(self._env_dir))
        else:
            return []

    @property
    def base_dir(self):
        """
        Return the base directory of the conda installation

        This is the location reported by 'conda info --base'
        """
        if self._base_dir is None:
            if not self.is_installed:
                raise CondaWrapperError("Can't locate conda base "
                                        "directory: conda not installed")
            info_cmd = conda_apps.info_base(self.conda)
            status,output = info_cmd.subprocess_check_output(
                include_err=False)
            if status != 0 or not output.strip():
                raise CondaWrapperError("Failed to get conda base "
                                        "directory (status %s)" % status)
            self._base_dir = output.strip().split('\n')[-1].strip()
            logger.debug("Conda base directory: %s" % self._base_dir)
        return self._base_dir

    def create_env(self,name,*packages,**args):
        """
        Create a new conda environment

        Arguments:
          name (str): name of the new environment
          packages (list): package specifications for
            packages to install (e.g. 'samtools=1.10')
          channels (list): optional, channels to use
            for this environment (overrides the channels
            set for the wrapper)
          log (PipelineLog): optional, if supplied then
            output from conda is sent to stdout and the
            log

        Returns:
          String: path to the environment.
        """
        channels = args.get('channels',None)
        log = args.get('log',None)
        if channels is None:
            channels = self._channels
        # Get a lock on create operation
        lock = self._lock_manager.acquire("conda.create_env")
        try:
            if name in self.list_envs:
                # Environment already exists
                logger.warning("'%s': environment already exists" % name)
            else:
                # Create new environment
                if not self.is_installed:
                    raise CondaWrapperError("Can't create environment: "
                                            "conda not installed")
                if self._env_dir:
                    prefix = os.path.join(self._env_dir,name)
                else:
                    prefix = name
                create_cmd = conda_apps.create(self.conda,
                                               prefix,
                                               packages,
                                               channels=channels)
                logger.debug("Running '%s'" % create_cmd)
                # Run the command
                if log is not None:
                    status = create_cmd.run_subprocess(tee=log)
                    output = None
                else:
                    status,output = create_cmd.subprocess_check_output()
                if status != 0:
                    raise CondaCreateEnvError(
                        status=status,
                        env_name=name,
                        cmdline=str(create_cmd),
                        output=output)
        finally:
            # Release the lock
            self._lock_manager.release(lock)
        # Return path to conda environment
        if self._env_dir:
            return os.path.join(self._env_dir,name)
        return name

    def activate_env_cmd(self,env):
        """
        Fetch commands to activate a conda environment

        For conda 4.4 or later, the 'conda.sh' script from
        the base installation is sourced before running
        'conda activate'; older versions use the 'activate'
        script instead.

        Arguments:
          env (str): name/path of the environment to
            activate

        Returns:
          String: shell commands which activate the
            environment.
        """
        base_dir = self.base_dir
        version = self.version
        if version and version_test(version,
                                    CONDA_ACTIVATE_MIN_VERSION,'<'):
            return str(Command('source',
                               os.path.join(base_dir,'bin','activate'),
                               env))
        return "%s\n%s" % (Command('source',
                                   os.path.join(base_dir,'etc',
                                                'profile.d','conda.sh')),
                           Command('conda','activate',env))

    def run_in_env(self,cmd,env,working_dir=None,tee=None,log=None):
        """
        Run a command inside an activated conda environment

        The command is written to a temporary bash wrapper
        script which activates the environment first.

        Arguments:
          cmd (Command): command to run
          env (str): name/path of the environment
          working_dir (str): optional, directory to run
            the command in
          tee (object): optional, file-like object which
            output will be copied to (in addition to
            stdout)
          log (str): optional, name of file to append
            output to (instead of stdout)

        Returns:
          Integer: exit status from the command.
        """
        prologue = "%s || exit 1" % \
                   self.activate_env_cmd(env).replace('\n',' && ')
        fd,script_file = tempfile.mkstemp(prefix="lca_conda.",
                                          suffix=".sh")
        os.close(fd)
        try:
            cmd.make_wrapper_script(shell='/bin/bash',
                                    filen=script_file,
                                    prologue=prologue,
                                    quote_args=True)
            logger.debug("Running '%s' in environment '%s'" % (cmd,env))
            return Command('/bin/bash',script_file).run_subprocess(
                working_dir=working_dir,
                tee=tee,
                log=log)
        finally:
            os.remove(script_file)

######################################################################
# Custom exceptions
######################################################################

class CondaWrapperError(LCAPipelineError):
    """
    Base class for conda-specific exceptions
    """

class CondaCreateEnvError(CondaWrapperError):
    """
    Exception raised when CondaWrapper class fails
    to create a new environment

    Arguments:
      message (str): error message
      env_name (str): name of the environment
      status (int): status returned by the conda command
      cmdline (str): command line for the conda command
        that generated the error
      output (str): output from the conda command
    """
    def __init__(self,message=None,env_name=None,status=None,
                 cmdline=None,output=None):
        if message is None:
            message = "Unable to create environment"
        self.message = message
        self.env_name = env_name
        self.status = status
        self.cmdline = cmdline
        self.output = output
        CondaWrapperError.__init__(self,self.message)

