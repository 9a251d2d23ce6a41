#!/usr/bin/env python
#
#     exceptions.py: custom exception classes

class LCAPipelineError(Exception):
    """Base class for errors which stop an LCA pipeline workflow
    """

class ParameterError(LCAPipelineError):
    """Used to indicate a missing or invalid parameter
    """

class NotConfirmedError(LCAPipelineError):
    """Used when the user declines to continue at a prompt
    """

class ChecksumError(LCAPipelineError):
    """Used to indicate that checksum verification failed
    """

class ExternalCommandError(LCAPipelineError):
    """
    Used when an external program returns a fatal error

    Arguments:
      message (str): error message
      cmdline (str): command line that generated the error
      status (int): exit status returned by the command
      output (str): output from the command (if captured)
    """
    def __init__(self,message,cmdline=None,status=None,output=None):
        self.message = message
        self.cmdline = cmdline
        self.status = status
        self.output = output
        LCAPipelineError.__init__(self,self.message)
