#!/usr/bin/env python
#
#     command.py: utilities for running command line applications
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
########################################################################
#
# command.py
#
#########################################################################

"""
Provides a single utility class `Command` which can be used
to build command lines to execute external programs (for
example ``nextflow``, ``cellranger`` and ``conda``).
"""

#######################################################################
# Imports
#######################################################################

import os
import sys
import shlex
import subprocess
import logging

# Module specific logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

#######################################################################
# Classes
#######################################################################

class Command(object):
    """Class for creating and executing command lines

    For example to create a command line to check the
    installed version of cellranger:

    >>> sitecheck = Command('cellranger','sitecheck')
    >>> str(sitecheck)
    'cellranger sitecheck'

    To run it, copying the output to an open pipeline
    log as well as to stdout:

    >>> sitecheck.run_subprocess(tee=log)

    Alternatively the output can be appended to a named
    file, or captured and returned (see the
    'subprocess_check_output' method).
    """
    def __init__(self,command,*args):
        """Create a new Command instance

        Arguments:
          command: the program name
          args   : optional, one or more additional command
                   line arguments (converted to strings)

        """
        self._cmd = str(command)
        self._args = [str(x) for x in args]

    def add_args(self,*args):
        """Append arguments to the command

        """
        self._args.extend([str(x) for x in args])

    @property
    def command(self):
        """Return the program name

        """
        return self._cmd

    @property
    def args(self):
        """Return the arguments as a list

        """
        return self._args

    @property
    def command_line(self):
        """Return the full command line as a list

        """
        return [self._cmd] + self._args

    def __repr__(self):
        return ' '.join(self.command_line)

    def run_subprocess(self,log=None,working_dir=None,tee=None):
        """Run the command and wait for it to finish

        Arguments:
          log: optional, name of a file to append the combined
            stdout and stderr to (defaults to sys.stdout and
            sys.stderr)
          working_dir: optional, directory to run the command
            in (defaults to current directory)
          tee: optional, file-like object; if set then stdout
            and stderr are combined, echoed to sys.stdout and
            also written line-by-line to 'tee' (overrides 'log')

        Returns:
          Exit code from the command (-1 if it was interrupted).

        """
        p = None
        fpout = None
        try:
            if tee is not None:
                p = subprocess.Popen(self.command_line,
                                     cwd=working_dir,
                                     stdout=subprocess.PIPE,
                                     stderr=subprocess.STDOUT,
                                     universal_newlines=True)
                for line in p.stdout:
                    sys.stdout.write(line)
                    sys.stdout.flush()
                    tee.write(line)
                p.stdout.close()
            else:
                if log is not None:
                    logger.debug("Appending output to %s" % log)
                    fpout = open(log,'at')
                p = subprocess.Popen(self.command_line,
                                     cwd=working_dir,
                                     stdout=fpout,
                                     stderr=(subprocess.STDOUT
                                             if fpout else None))
            returncode = p.wait()
        except KeyboardInterrupt:
            logger.warning("KeyboardInterrupt: stopping %s" % self._cmd)
            if p is not None:
                p.kill()
            returncode = -1
        finally:
            if fpout is not None:
                fpout.close()
        return returncode

    def subprocess_check_output(self,include_err=True,working_dir=None):
        """Run the command and capture the output

        Arguments:
          include_err: optional, if True then stderr is included in
            the output (default); otherwise stderr is discarded.
          working_dir: optional, directory to run the command
            in (defaults to current directory)

        Returns:
          Tuple of (returncode,output); the return code is 127
          if the program couldn't be run at all.

        """
        try:
            output = subprocess.check_output(
                self.command_line,
                cwd=working_dir,
                stderr=(subprocess.STDOUT if include_err
                        else subprocess.DEVNULL),
                universal_newlines=True)
            status = 0
        except subprocess.CalledProcessError as ex:
            output = ex.output
            status = ex.returncode
        except OSError as ex:
            output = str(ex)
            status = 127
        return (status,output)

    def make_wrapper_script(self,shell=None,filen=None,prologue=None,
                            quote_args=False):
        """Wrap the command in a script

        Arguments:
          shell (str): optional, if set then will be written
            to the wrapper script shebang (#!)
          filen (str): optional, if set then the script is also
            written to an executable file with this path
          prologue (str): optional, if set then will be written
            into the script before the command
          quote_args (bool): if True then arguments are quoted
            (where necessary) so that the shell passes each one
            through unchanged

        Returns:
          String: the wrapper script contents.
        """
        args = []
        for arg in self.command_line:
            if quote_args:
                arg = shlex.quote(arg)
            args.append(arg)
        script = []
        if shell is not None:
            script.append("#!%s" % shell)
        if prologue is not None:
            script.append(prologue)
        script.append(' '.join(args))
        script = '\n'.join(script)
        if filen is not None:
            with open(filen,'wt') as fp:
                fp.write(script)
            os.chmod(filen,0o775)
        return script
