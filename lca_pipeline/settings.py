#!/bin/env python
#
#     settings.py: handle configuration settings for the LCA pipeline
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#

"""
Classes and functions for handling the collection of configuration
settings for the LCA pipeline workflows from 'ini'-style files.

The core class is called ``GenericSettings`` and provides the base
functionality for defining and handling configuration files, by
defining parameters in different sections along with their types and
default values.

For example, a simple ``.ini`` file could look like:

::

    [general]
    localcores = 24
    #localmemgb = 80

The values of the parameters can then be accessed either via a chain
of attributes, for example:

>>> s.general.localcores
24

or via keys, for example:

>>> s["general"]["localcores"]
24

To update values programmatically after they have been set, use the
``set`` method with the fully-qualified parameter name, for example:

>>> s.set("general.localcores", 12)

The ``Settings`` class is built using the ``GenericSettings`` class
and defines the parameters used by the pipeline workflows.
"""

#######################################################################
# Imports
#######################################################################

import os
import logging
from fnmatch import fnmatch
from bcftbx.utils import AttributeDictionary
from .config import Config
from .config import NullValue
from .exceptions import LCAPipelineError
from .conda import LCA_CONDA_ENV_NAME
from .conda import LCA_CONDA_PACKAGES

# Module specific logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

#######################################################################
# Constants
#######################################################################

# Environment variable to override settings file location
SETTINGS_ENV_VAR = "LCA_PIPELINE_CONF"

#######################################################################
# Classes
#######################################################################

class GenericSettings:
    """
    Base class for handling .ini configuration files

    Arguments:
      settings (dict): mapping of section names to
        dictionaries defining parameters names and types
      defaults (dict): dictionary of fully qualified
        parameter names mapped to default settings
      settings_file (str): path to an .ini format file
        to load values from
      resolve_undefined (bool): if True (default) then
        assign default values to "null" parameters
    """
    def __init__(self, settings, defaults={}, settings_file=None,
                 resolve_undefined=True):
        self._settings = settings
        self._defaults = defaults
        self._sections = []
        self._settings_file = None
        # Null value indicates no setting assigned
        self.nullvalue = NullValue()
        # Build the initial structure with all parameters
        # assigned to 'null'
        self._create_sections(self._settings)
        # Load data from file
        if settings_file:
            self._settings_file = os.path.abspath(settings_file)
            self._load_from_file(self._settings_file, self._settings)
        # Set defaults
        if resolve_undefined:
            self.resolve_undefined_params()

    def __getitem__(self,section):
        """
        Implement __getitem__ to enable s[SECTION]
        """
        return getattr(self, section)

    def __contains__(self, item):
        """
        Implement __contains__ to enable 'SECTION[.NAME] in s'
        """
        section, name = self._split_parameter(item)
        if section not in self._sections:
            return False
        if name is not None:
            return name in getattr(self, section)
        return True

    @property
    def settings_file(self):
        """
        Path to the file the settings were loaded from
        """
        return self._settings_file

    def _split_parameter(self, p):
        """
        Split parameter into section and name

        Parameter should be of the form ``SECTION[.NAME]``;
        a missing name is returned as ``None``.
        """
        try:
            section, name = p.split('.')
        except ValueError:
            section = p
            name = None
        return (section, name)

    def set(self, param, value):
        """
        Update a configuration parameter value

        Arguments:
          param (str): an identifier of the form
            SECTION.NAME which specifies the parameter
            to update
          value (str): the new value of the parameter
        """
        section, name = self._split_parameter(param)
        if section not in self._sections:
            self._add_section(section)
        getattr(self, section)[name] = value
        logger.debug("set: %s.%s -> %r" % (section, name, value))

    def _create_sections(self, settings):
        """
        Create the sections defined in the settings

        Builds the initial (empty) structure with the values
        for all parameters assigned to 'null'
        """
        for section in settings:
            self._add_section(section)
            for var in settings[section]:
                self[section][var] = self.nullvalue

    def _add_section(self, section):
        """
        Add a new (empty) section
        """
        if section not in self._sections:
            self._sections.append(section)
            setattr(self, section, AttributeDictionary())

    def _load_from_file(self, settings_file, settings):
        """
        Load settings data from .ini file

        Arguments:
          settings_file (str): path to the .ini file
          settings (dict):mapping of section names to
            dictionaries defining parameters names and
            types
        """
        logger.debug("Loading values from '%s'" % settings_file)
        config = Config()
        self.nullvalue = config.nullvalue
        config.read(settings_file)
        for section in settings:
            for var in settings[section]:
                param_type = settings[section][var]
                try:
                    self[section][var] = self.update_value(
                        config.get(section, var), param_type)
                except ValueError:
                    raise LCAPipelineError("%s: bad value for '%s.%s' "
                                           "(expected %s)" %
                                           (settings_file, section, var,
                                            param_type.__name__))

    def param_type(self, param):
        """
        Return the type conversion function for a parameter

        Returns None if the parameter is not defined.
        """
        section, name = self._split_parameter(param)
        try:
            return self._settings[section][name]
        except KeyError:
            return None

    def fetch_value(self, param):
        """
        Return the value stored against a parameter

        Arguments:
          param (str): parameter name of the form
            SECTION.NAME
        """
        section, name = self._split_parameter(param)
        return getattr(self, section)[name]

    def list_params(self, pattern=None, exclude_undefined=False):
        """
        Return (yield) all the stored parameters

        Arguments:
          pattern (str): optional glob-style pattern;
            if supplied then only parameters matching
            the pattern will be returned
          exclude_undefined (bool): if True then
            parameters with null values will not be
            returned

        Yields:
          String: parameter names of the form
            SECTION.NAME
        """
        if pattern and '.' not in pattern:
            pattern += '.*'
        for section in self._sections:
            for v in getattr(self, section):
                param = "%s.%s" % (section, v)
                if pattern and not fnmatch(param, pattern):
                    continue
                if exclude_undefined and \
                   self.fetch_value(param) == self.nullvalue:
                    continue
                yield param

    def resolve_undefined_params(self):
        """
        Set non-null values for all parameters which are null

        Parameters which are unset but have a defined default
        are set to the default value; any that are still
        undefined are assigned the value of 'None'.
        """
        for param in self._defaults:
            if self.fetch_value(param) == self.nullvalue:
                section, name = self._split_parameter(param)
                self.set(param, self.update_value(
                    self._defaults[param],
                    self._settings[section][name]))
        for param in self.list_params():
            if self.fetch_value(param) == self.nullvalue:
                self.set(param, None)

    def save(self, out_file=None, exclude_undefined=True):
        """
        Save the current configuration to file

        Arguments:
          out_file (str): specify output file (default:
            overwrite initial config file)
          exclude_undefined (bool): if True then parameters
            with null values will not be written to the
            output config file (default)
        """
        if not out_file:
            out_file = self._settings_file
        if not out_file:
            logger.warning("No output file, nothing saved")
            return
        config = Config()
        for param in self.list_params(exclude_undefined=exclude_undefined):
            section, name = self._split_parameter(param)
            value = self.fetch_value(param)
            if exclude_undefined and value is None:
                continue
            if not config.has_section(section):
                config.add_section(section)
            if isinstance(value, (list, tuple)):
                value = ','.join([str(x) for x in value])
            config.set(section, name, str(value))
        with open(os.path.abspath(out_file),'wt') as fp:
            config.write(fp)

    def report_settings(self, exclude_undefined=False):
        """
        Report the settings read from the config file

        Returns:
          String: report of the settings.
        """
        text = []
        if self._settings_file:
            text.append("Settings from %s" % self._settings_file)
        else:
            text.append("No settings file found, reporting built-in "
                        "defaults")
        for section in self._sections:
            content = show_dictionary(
                getattr(self, section),
                exclude_value=(None if exclude_undefined else False))
            if content:
                text.append("[%s]" % section)
                text.append(content)
        return '\n'.join(text)

    def update_value(self, value, param_type=None):
        """
        Update raw value by stripping quotes and converting to type

        'None' values are converted to "null"; other non-null
        values will have any surrounding quotes removed and
        then are converted to type.

        Arguments:
          value (object): raw value
          param_type (function): type conversion function
        """
        if value is None:
            # Set None to null
            value = self.nullvalue
        elif value != self.nullvalue:
            # Strip quotes
            if str(value)[:1] in ("\"", "'"):
                if str(value)[0] == str(value)[-1]:
                    value = str(value)[1:-1]
            if param_type:
                value = param_type(value)
        return value

class Settings(GenericSettings):
    """
    Handle local settings for the LCA pipeline workflows

    Defines the configuration parameters and provides an
    interface for loading and accessing local settings
    defined in an ``.ini`` file.

    If a config file isn't explicitly specified then the
    instance will will attempt to locate one by searching
    the locations defined within the ``locate_settings_file``
    function; if no file is found then the built-in defaults
    are used.

    Arguments:
      settings_file (str): optional, path to .ini file to
        load parameters from
      resolve_undefined (bool): if True (default) then
        assign default values to "null" parameters
    """
    def __init__(self, settings_file=None, resolve_undefined=True):
        if settings_file is None:
            settings_file = locate_settings_file()
        GenericSettings.__init__(
            self,
            # Define the sections, parameters and types
            settings = {
                "general": { "pipeline_dir": str,
                             "env_name": str,
                             "localcores": int,
                             "localmemgb": int,
                             "samtools_thr": int },
                "setup": { "download_url": str,
                           "ensembl_release": str,
                           "genome": str,
                           "species": str,
                           "cellranger_version": str,
                           "nthreads": int,
                           "memgb": int },
                "conda": { "packages": comma_separated,
                           "channels": comma_separated },
                "ensembl": { "base_url": str },
            },
            # Default values
            defaults = {
                "general.env_name": LCA_CONDA_ENV_NAME,
                "general.localcores": 24,
                "general.localmemgb": 80,
                "general.samtools_thr": 12,
                "setup.download_url":
                "https://hmgubox2.helmholtz-muenchen.de/public.php/webdav",
                "setup.ensembl_release": "99",
                "setup.genome": "GRCh38",
                "setup.species": "homo_sapiens",
                "setup.cellranger_version": "3.1.0",
                "setup.nthreads": 20,
                "setup.memgb": 48,
                "conda.packages": ','.join(LCA_CONDA_PACKAGES),
                "conda.channels": "conda-forge,bioconda",
                "ensembl.base_url": "ftp://ftp.ensembl.org/pub",
            },
            settings_file=settings_file,
            resolve_undefined=resolve_undefined)

#######################################################################
# Functions
#######################################################################

def comma_separated(s):
    """
    Implement a 'type' function for comma-separated lists

    Arguments:
      s (str): string with items separated by commas (or
        an existing list)

    Returns:
      List: list of the (non-blank) items.
    """
    if isinstance(s, (list, tuple)):
        return list(s)
    return [x.strip() for x in str(s).split(',') if x.strip()]

def get_config_dir():
    """
    Return location of the package 'etc' directory
    """
    return os.path.join(os.path.dirname(os.path.abspath(__file__)),'etc')

def locate_settings_file(name='settings.ini'):
    """
    Locate configuration settings file

    Look for a configuration settings file (default name
    'settings.ini'). The search path is:

    1. file specified by the LCA_PIPELINE_CONF environment
       variable (if it exists)
    2. '.lca_pipeline' subdir of the user's home directory
    3. 'etc' subdir of the package installation

    The first file with a matching name is returned.

    Returns the path to a settings file, or None if one isn't
    found.
    """
    # Check for environment variable
    try:
        settings_file = os.environ[SETTINGS_ENV_VAR]
        if os.path.exists(settings_file):
            return settings_file
        logger.warning("%s: file set by %s not found" %
                       (settings_file,SETTINGS_ENV_VAR))
    except KeyError:
        pass
    # Check locations
    config_file_dirs = (os.path.join(os.path.expanduser('~'),
                                     '.lca_pipeline'),
                        get_config_dir(),)
    for path in config_file_dirs:
        settings_file = os.path.join(path,name)
        if os.path.exists(settings_file):
            return settings_file
    logger.debug("No local settings file found in %s" %
                 ', '.join(config_file_dirs))
    return None

def show_dictionary(d,indent='   ',exclude_value=False):
    """
    Return the contents of a dictionary as text

    Arguments:
      d (str): dictionary instance to show
      exclude_value (object): optional, if not 'False'
        then don't include entries which match this
        value
    """
    text = []
    for key in d:
        if exclude_value is not False and d[key] is exclude_value:
            continue
        value = d[key]
        if isinstance(value, (list, tuple)):
            value = ','.join([str(x) for x in value])
        text.append("%s%s = %s" % (indent,
                                   key,
                                   (value if value is not None
                                    else '<Not set>')))
    return '\n'.join(text)
