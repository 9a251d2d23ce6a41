#!/usr/bin/env python
#
#     cli/lca_pipeline.py: command line interface for lca_pipeline
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
#########################################################################
#
# lca_pipeline.py
#
#########################################################################

"""
Set up and run the Lung Cell Atlas (LCA) cellranger pipeline

Implements a program for setting up and running the LCA pipeline at
a contributing site.

The commands are:

    setup
    testrun
    run

The 'setup' command downloads the test data, creates the conda
environment and builds the reference genome. The 'testrun' command then
checks the installation by running the pipeline on the test data, and
the 'run' command processes a dataset.

Additional commands are available:

    mkref
    config

'mkref' builds a cellranger reference for an arbitrary Ensembl release
and 'config' reports and updates the local settings.
"""

#######################################################################
# Imports
#######################################################################

import os
import argparse
from bcftbx.cmdparse import CommandParser
from bcftbx.cmdparse import add_debug_option
from .. import get_version
from ..commands.setup_cmd import setup as setup_cmd
from ..commands.run_cmd import run as run_cmd
from ..commands.testrun_cmd import testrun as testrun_cmd
from ..commands.mkref_cmd import mkref as mkref_cmd
from ..settings import Settings
from ..exceptions import LCAPipelineError
from ..exceptions import NotConfirmedError

# Logging
import logging
logging.basicConfig(format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# Version
__version__ = get_version()

#######################################################################
# Functions
#######################################################################

# Command line parsers

def add_setup_command(cmdparser,settings):
    """
    Create a parser for the 'setup' command
    """
    p = cmdparser.add_command('setup',
                              help="Set up the LCA pipeline",
                              description="Download the files needed "
                              "for the LCA pipeline, create the conda "
                              "environment and build the reference "
                              "genome.")
    p.add_argument('-w',action='store',dest='work_dir',default=None,
                   metavar='WORK_DIR',
                   help="Working directory where the test data, conda "
                   "build channel and reference genome will be stored "
                   "(mandatory)")
    p.add_argument('-c',action='store',dest='conda_envs_dir',default=None,
                   metavar='CONDA_ENVS_DIR',
                   help="Directory in which to create the conda "
                   "environment, usually ending with '/envs/' "
                   "(mandatory if -C or -R is true)")
    p.add_argument('-u',action='store',dest='user_pass',default=None,
                   metavar='USER:PASS',
                   help="User name and password for the downloads, "
                   "provided by your LCA contact person (mandatory if "
                   "-D is true)")
    p.add_argument('-t',action='store',dest='nthreads',type=int,
                   default=settings.setup.nthreads,
                   help="Number of threads for building the reference "
                   "genome (default: %s)" % settings.setup.nthreads)
    p.add_argument('-m',action='store',dest='memgb',type=int,
                   default=settings.setup.memgb,
                   help="Memory in Gb for building the reference genome "
                   "(default: %s)" % settings.setup.memgb)
    p.add_argument('-s',action='store',dest='species',
                   default=settings.setup.species,
                   help="Species for the reference genome (default: %s)" %
                   settings.setup.species)
    p.add_argument('-e',action='store',dest='ensembl_release',
                   default=settings.setup.ensembl_release,
                   help="Ensembl release for the reference genome "
                   "(default: %s)" % settings.setup.ensembl_release)
    p.add_argument('-g',action='store',dest='genome',
                   default=settings.setup.genome,
                   help="Genome release, matching the Ensembl release "
                   "(default: %s)" % settings.setup.genome)
    p.add_argument('-D',action='store',dest='download_files',
                   default='true',metavar='true|false',
                   help="Download the test data and conda build channel "
                   "(default: true)")
    p.add_argument('-C',action='store',dest='create_env',
                   default='true',metavar='true|false',
                   help="Create the conda environment (default: true)")
    p.add_argument('-R',action='store',dest='build_ref_genome',
                   default='true',metavar='true|false',
                   help="Build the reference genome (default: true)")
    p.add_argument('-L',action='store',dest='download_ensembl_files',
                   default='true',metavar='true|false',
                   help="Download the Ensembl files for the reference "
                   "genome; if false then previously downloaded files "
                   "in WORK_DIR/refgenomes are used (default: true)")
    p.add_argument('-S',action='store',dest='incl_sarscov2',
                   default='false',metavar='true|false',
                   help="Add the SARS-CoV-2 genome to the reference "
                   "genome (default: false)")
    add_common_options(p,settings)

def add_run_command(cmdparser,settings):
    """
    Create a parser for the 'run' command
    """
    p = cmdparser.add_command('run',
                              help="Run the LCA pipeline on a dataset",
                              description="Run the LCA cellranger "
                              "pipeline on the samples in SAMPLE_TABLE, "
                              "and archive and upload the outputs.")
    add_run_options(p,settings)
    p.add_argument('-n',action='store',dest='dataset_name',default=None,
                   help="Name of the dataset, which is added to the "
                   "name of the output file (mandatory)")
    p.add_argument('-x',action='store',dest='sample_table',default=None,
                   help="Path to the file with the sample information "
                   "(mandatory)")
    p.add_argument('-o',action='store',dest='out_dir',default=None,
                   help="Output directory for this dataset (mandatory)")
    add_resource_options(p,settings)
    add_common_options(p,settings)

def add_testrun_command(cmdparser,settings):
    """
    Create a parser for the 'testrun' command
    """
    p = cmdparser.add_command('testrun',
                              help="Run the LCA pipeline on the test data",
                              description="Test the LCA pipeline setup "
                              "by running it on the test data, and "
                              "archive and upload the outputs.")
    add_run_options(p,settings)
    p.add_argument('-o',action='store',dest='out_dir',default=None,
                   help="Output directory for the test run (mandatory)")
    p.add_argument('-w',action='store',dest='work_dir',default=None,
                   help="Working directory used for the pipeline setup, "
                   "containing the 'refgenomes' and 'testdata' "
                   "directories (mandatory)")
    add_resource_options(p,settings)
    add_common_options(p,settings)

def add_mkref_command(cmdparser,settings):
    """
    Create a parser for the 'mkref' command
    """
    p = cmdparser.add_command('mkref',
                              help="Build a cellranger reference",
                              description="Create a reference for "
                              "cellranger from an Ensembl release, in the "
                              "current directory.")
    p.add_argument('-e',action='store',dest='ensembl_release',
                   default=settings.setup.ensembl_release,
                   help="Ensembl release (default: %s)" %
                   settings.setup.ensembl_release)
    p.add_argument('-g',action='store',dest='genome',
                   default=settings.setup.genome,
                   help="Genome1 release, without the patch id (e.g. "
                   "GRCh38) (default: %s)" % settings.setup.genome)
    p.add_argument('-s',action='store',dest='species',
                   default=settings.setup.species,
                   help="Species1 (e.g. homo_sapiens, mus_musculus) "
                   "(default: %s)" % settings.setup.species)
    p.add_argument('-x',action='store',dest='genome2',default=None,
                   help="Genome2 release, for a second species")
    p.add_argument('-y',action='store',dest='species2',default=None,
                   help="Species2")
    p.add_argument('-c',action='store',dest='cellranger_version',
                   default=settings.setup.cellranger_version,
                   help="Expected cellranger version (default: %s)" %
                   settings.setup.cellranger_version)
    p.add_argument('-t',action='store',dest='nthreads',type=int,
                   default=settings.setup.nthreads,
                   help="Number of threads for 'cellranger mkref' "
                   "(default: %s)" % settings.setup.nthreads)
    p.add_argument('-m',action='store',dest='memgb',type=int,
                   default=settings.setup.memgb,
                   help="Memory in Gb for 'cellranger mkref' "
                   "(default: %s)" % settings.setup.memgb)
    p.add_argument('-f',action='store',dest='custom_gtf',default=None,
                   help="Add this custom GTF to the annotation of "
                   "genome1")
    p.add_argument('-a',action='store',dest='custom_fasta',default=None,
                   help="Add this custom FASTA to genome1")
    p.add_argument('-n',action='store',dest='custom_name',
                   default='custom',
                   help="Name used for the custom FASTA and GTF "
                   "(default: custom)")
    p.add_argument('-u',action='store',dest='force',default='false',
                   metavar='true|false',
                   help="Force: if true then remove existing log file "
                   "and reference folder, and skip the parameter check "
                   "(default: false)")
    p.add_argument('--yes',action='store_true',dest='assume_yes',
                   default=False,
                   help="Don't ask for confirmation of the parameters")
    add_debug_option(p)

def add_config_command(cmdparser,settings):
    """
    Create a parser for the 'config' command
    """
    p = cmdparser.add_command('config',
                              help="Query and change local settings",
                              description="Query and change the local "
                              "settings for the LCA pipeline.")
    p.add_argument('--set',action='append',dest='key_value',default=None,
                   help="Set the value of a parameter. KEY_VALUE should be "
                   "of the form '<section>.<param>=<value>'. Multiple "
                   "--set options can be specified.")
    add_debug_option(p)

def add_run_options(p,settings):
    """
    Add the options shared by 'run' and 'testrun'
    """
    p.add_argument('-p',action='store',dest='profile',default=None,
                   help="Profile for computation: use 'local' if the "
                   "pipeline can run on the current machine, or "
                   "'cluster' if jobs need to be submitted to a cluster "
                   "(mandatory)")
    p.add_argument('-e',action='store',dest='conda_env_dir_path',
                   default=None,
                   help="Path to the %s conda environment (mandatory)" %
                   settings.general.env_name)
    p.add_argument('-s',action='store',dest='sitename',default=None,
                   help="Name of your site/institute e.g. SANGER or "
                   "HELMHOLTZ; used in the name of the output file "
                   "(mandatory)")
    p.add_argument('-u',action='store',dest='upload',default=None,
                   metavar='true|false',
                   help="Whether to upload the output to the Helmholtz "
                   "secure server (mandatory)")
    p.add_argument('-l',action='store',dest='upload_link',default=None,
                   help="Link to upload the output to (mandatory if "
                   "-u is true)")
    p.add_argument('--upload-password',action='store',
                   dest='upload_password',default=None,
                   help="Password for the upload link (default: read "
                   "from the LCA_UPLOAD_PASSWORD environment variable)")

def add_resource_options(p,settings):
    """
    Add the options for computational resources
    """
    resources = p.add_argument_group('Resources')
    resources.add_argument('-c',action='store',dest='localcores',type=int,
                           default=settings.general.localcores,
                           help="Number of cores to be used by cellranger "
                           "(default: %s)" % settings.general.localcores)
    resources.add_argument('-m',action='store',dest='localmemgb',type=int,
                           default=settings.general.localmemgb,
                           help="Memory in Gb to be used by cellranger "
                           "(default: %s)" % settings.general.localmemgb)
    resources.add_argument('-t',action='store',dest='samtools_thr',
                           type=int,default=settings.general.samtools_thr,
                           help="Number of cores to be used by samtools; "
                           "should be lower than the number used by "
                           "cellranger (default: %s)" %
                           settings.general.samtools_thr)
    cluster = p.add_argument_group('Cluster options (SLURM)')
    cluster.add_argument('-q',action='store',dest='queue',default=None,
                         help="Name of the queue/partition to use")
    cluster.add_argument('-C',action='store',dest='cluster_options',
                         default=None,
                         help="Additional options for submitting jobs, as "
                         "a string e.g. 'qos=icb_other --nice=1000'")

def add_common_options(p,settings):
    """
    Add the options shared by 'setup', 'run' and 'testrun'
    """
    p.add_argument('--pipeline-dir',action='store',dest='pipeline_dir',
                   default=settings.general.pipeline_dir,
                   help="Path to the LCA pipeline directory (default: %s)" %
                   (settings.general.pipeline_dir
                    if settings.general.pipeline_dir
                    else "current directory"))
    p.add_argument('-y','--yes',action='store_true',dest='assume_yes',
                   default=False,
                   help="Don't ask for confirmation of the parameters")
    add_debug_option(p)

# Commands

def setup(args,settings):
    """
    Implement functionality for 'setup' command
    """
    return setup_cmd(work_dir=args.work_dir,
                     conda_envs_dir=args.conda_envs_dir,
                     user_pass=args.user_pass,
                     nthreads=args.nthreads,
                     memgb=args.memgb,
                     species=args.species,
                     ensembl_release=args.ensembl_release,
                     genome=args.genome,
                     cellranger_version=settings.setup.cellranger_version,
                     download_files=args.download_files,
                     create_env=args.create_env,
                     build_ref_genome=args.build_ref_genome,
                     download_ensembl_files=args.download_ensembl_files,
                     incl_sarscov2=args.incl_sarscov2,
                     pipeline_dir=args.pipeline_dir,
                     download_url=settings.setup.download_url,
                     env_name=settings.general.env_name,
                     packages=settings.conda.packages,
                     channels=settings.conda.channels,
                     ensembl_base_url=settings.ensembl.base_url,
                     assume_yes=args.assume_yes)

def run(args,settings):
    """
    Implement functionality for 'run' command
    """
    return run_cmd(profile=args.profile,
                   conda_env_dir_path=args.conda_env_dir_path,
                   sitename=args.sitename,
                   dataset_name=args.dataset_name,
                   upload=args.upload,
                   upload_link=args.upload_link,
                   sample_table=args.sample_table,
                   out_dir=args.out_dir,
                   localcores=args.localcores,
                   localmemgb=args.localmemgb,
                   samtools_thr=args.samtools_thr,
                   queue=args.queue,
                   cluster_options=args.cluster_options,
                   pipeline_dir=args.pipeline_dir,
                   env_name=settings.general.env_name,
                   upload_password=get_upload_password(args),
                   assume_yes=args.assume_yes)

def testrun(args,settings):
    """
    Implement functionality for 'testrun' command
    """
    return testrun_cmd(profile=args.profile,
                       conda_env_dir_path=args.conda_env_dir_path,
                       sitename=args.sitename,
                       upload=args.upload,
                       upload_link=args.upload_link,
                       out_dir=args.out_dir,
                       work_dir=args.work_dir,
                       localcores=args.localcores,
                       localmemgb=args.localmemgb,
                       samtools_thr=args.samtools_thr,
                       queue=args.queue,
                       cluster_options=args.cluster_options,
                       pipeline_dir=args.pipeline_dir,
                       env_name=settings.general.env_name,
                       upload_password=get_upload_password(args),
                       assume_yes=args.assume_yes)

def mkref(args,settings):
    """
    Implement functionality for 'mkref' command
    """
    return mkref_cmd(ensembl_release=args.ensembl_release,
                     genome=args.genome,
                     species=args.species,
                     genome2=args.genome2,
                     species2=args.species2,
                     cellranger_version=args.cellranger_version,
                     nthreads=args.nthreads,
                     memgb=args.memgb,
                     custom_gtf=args.custom_gtf,
                     custom_fasta=args.custom_fasta,
                     custom_name=args.custom_name,
                     force=args.force,
                     ensembl_base_url=settings.ensembl.base_url,
                     assume_yes=args.assume_yes)

def config(args,settings):
    """
    Implement functionality for 'config' command
    """
    if args.key_value:
        settings_file = settings.settings_file
        if settings_file is None:
            settings_file = os.path.join(os.path.expanduser('~'),
                                         '.lca_pipeline',
                                         'settings.ini')
            if not os.path.isdir(os.path.dirname(settings_file)):
                os.makedirs(os.path.dirname(settings_file))
        for key_value in args.key_value:
            try:
                i = key_value.index('=')
                key = key_value[:i]
                value = key_value[i+1:].strip("'").strip('"')
            except ValueError:
                raise LCAPipelineError("Can't process '%s'" % key_value)
            if '.' not in key:
                raise LCAPipelineError("Can't process '%s': parameter "
                                       "must be SECTION.NAME" % key_value)
            print("Setting '%s' to '%s'" % (key,value))
            try:
                settings.set(key,
                             settings.update_value(value,
                                                   settings.param_type(key)))
            except ValueError:
                raise LCAPipelineError("Bad value for '%s': '%s'" %
                                       (key,value))
        settings.save(settings_file)
        print("Updated %s" % settings_file)
    print(settings.report_settings())
    return 0

def get_upload_password(args):
    """
    Return the password for uploads (or None)
    """
    if args.upload_password is not None:
        return args.upload_password
    return os.environ.get("LCA_UPLOAD_PASSWORD",None)

def set_debug(debug_flag):
    """
    Turn on debug output
    """
    if debug_flag: logging.getLogger().setLevel(logging.DEBUG)

# Main function

def main(argv=None):
    """
    Run the 'lca_pipeline' command

    Arguments:
      argv (list): optional, command line arguments
        (default: use sys.argv)

    Returns:
      Integer: exit status.
    """
    # Load the local settings
    try:
        settings = Settings()
    except LCAPipelineError as ex:
        logger.error("Failed to load settings: %s. Exiting." % ex)
        return 1

    # Set up the command line parser
    p = CommandParser(
        description="Set up and run the Lung Cell Atlas cellranger "
        "pipeline",
        version="%prog "+__version__,
        subparser=argparse.ArgumentParser)

    # Add commands
    add_setup_command(p,settings)
    add_testrun_command(p,settings)
    add_run_command(p,settings)
    add_mkref_command(p,settings)
    add_config_command(p,settings)

    # Map commands to functions
    commands = {
        'setup': setup,
        'testrun': testrun,
        'run': run,
        'mkref': mkref,
        'config': config,
    }

    # Process command line
    cmd,args = p.parse_args(argv)

    # Turn on debugging?
    set_debug(args.debug)

    # Locate and run the requested command
    try:
        return commands[cmd](args,settings)
    except NotConfirmedError:
        return 1
    except LCAPipelineError as ex:
        logger.error("%s Exiting." % ex)
        return 1
