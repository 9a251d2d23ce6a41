#!/usr/bin/env python
#
#     setup_cmd.py: implement the LCA pipeline 'setup' command
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
#########################################################################

#######################################################################
# Imports
#######################################################################

import os
import logging
from .. import get_version
from ..applications import general
from ..checksums import verify_md5_checksums
from ..conda import CondaWrapper
from ..conda import DEFAULT_CONDA_CHANNELS
from ..conda import LCA_CONDA_ENV_NAME
from ..conda import LCA_CONDA_PACKAGES
from ..fileops import extract_tar_archive
from ..fileops import mkdir
from ..fileops import move_dir_contents
from ..pipelinelog import PipelineLog
from ..refgenome import ENSEMBL_FTP_URL
from ..refgenome import ReferenceGenomeBuilder
from ..utils import confirm
from ..utils import date_string
from ..utils import str_to_bool
from ..exceptions import ChecksumError
from ..exceptions import ExternalCommandError
from ..exceptions import LCAPipelineError
from ..exceptions import ParameterError
from .run_cmd import confirm_params

# Module specific logger
logger = logging.getLogger(__name__)

#######################################################################
# Constants
#######################################################################

DEFAULT_DOWNLOAD_URL = \
    "https://hmgubox2.helmholtz-muenchen.de/public.php/webdav"

# Archive with the test data and local conda build channel
DOWNLOADS_NAME = "LCA_pipeline_downloads"

# Parameters for which verified reference checksums are available
DEFAULT_REFERENCE = { 'genome': "GRCh38",
                      'ensembl_release': "99",
                      'species': "homo_sapiens",
                      'cellranger_version': "3.1.0" }

SARS_COV2_NAME = "sars_cov2"
SARS_COV2_FASTA = os.path.join("res","sars_cov2_genome","sars_cov2.fasta")
SARS_COV2_GTF = os.path.join("res","sars_cov2_genome",
                             "sars_cov2_genome.gtf")
REFGENOMES_MD5_DIR = os.path.join("src","refgenomes_md5checks")

#######################################################################
# Command functions
#######################################################################

def setup(work_dir=None,conda_envs_dir=None,user_pass=None,nthreads=20,
          memgb=48,species="homo_sapiens",ensembl_release="99",
          genome="GRCh38",cellranger_version="3.1.0",download_files="true",
          create_env="true",build_ref_genome="true",
          download_ensembl_files="true",incl_sarscov2="false",
          pipeline_dir=None,download_url=DEFAULT_DOWNLOAD_URL,
          env_name=LCA_CONDA_ENV_NAME,packages=LCA_CONDA_PACKAGES,
          channels=DEFAULT_CONDA_CHANNELS,ensembl_base_url=ENSEMBL_FTP_URL,
          conda=None,assume_yes=False,input_func=input):
    """
    Set up the LCA pipeline

    Performs up to three steps:

    1. download the test data and local conda build channel
       into the working directory
    2. create the conda environment with the software needed
       by the pipeline
    3. build the cellranger reference genome (optionally
       including the SARS-CoV-2 genome) in the 'refgenomes'
       subdirectory of the working directory

    Arguments:
      work_dir (str): working directory
      conda_envs_dir (str): directory to create the conda
        environment in (required for steps 2 and 3)
      user_pass (str): 'USER:PASSWORD' credentials for the
        downloads (required for step 1)
      nthreads (int): number of threads for 'mkref'
      memgb (int): memory in Gb for 'mkref'
      species (str): species for the reference genome
      ensembl_release (str): Ensembl release
      genome (str): genome release
      cellranger_version (str): expected cellranger version
      download_files (str): 'true' or 'false', whether to
        perform step 1
      create_env (str): 'true' or 'false', whether to perform
        step 2
      build_ref_genome (str): 'true' or 'false', whether to
        perform step 3
      download_ensembl_files (str): 'true' or 'false',
        whether to fetch the Ensembl files for step 3
      incl_sarscov2 (str): 'true' or 'false', whether to add
        the SARS-CoV-2 genome to the reference
      pipeline_dir (str): path to the LCA pipeline checkout
        (default: current directory)
      download_url (str): base URL for the downloads
      env_name (str): name of the conda environment
      packages (list): packages to install in the conda
        environment
      channels (list): conda channels (in addition to the
        local build channel)
      ensembl_base_url (str): base URL for Ensembl downloads
      conda (CondaWrapper): optional, conda wrapper to use
      assume_yes (bool): if True then don't prompt the user
        to confirm the parameters
      input_func (function): function to get the response to
        the confirmation prompts

    Returns:
      Integer: 0 on success, 1 if building the reference
        failed or its checksums didn't match.
    """
    version = get_version()
    # Check the arguments
    download_files = str_to_bool('-D',download_files)
    create_env = str_to_bool('-C',create_env)
    build_ref_genome = str_to_bool('-R',build_ref_genome)
    if download_files and not user_pass:
        raise ParameterError("user pass argument (-u flag) not provided.")
    if create_env or build_ref_genome:
        if not conda_envs_dir:
            raise ParameterError("conda environment directory (-c flag) "
                                 "argument not provided.")
        if not os.path.isdir(conda_envs_dir):
            raise ParameterError("Specified conda_envs_dir %s does not "
                                 "exist." % conda_envs_dir)
        if not conda_envs_dir.endswith("/envs/"):
            logger.warning("Specified conda envs directory %s does not "
                           "end with \"/envs/\". Make sure a trailing "
                           "slash is included. Is this the correct "
                           "directory?" % conda_envs_dir)
    if not work_dir:
        raise ParameterError("no argument provided for -w flag "
                             "(work_dir).")
    if not os.path.isdir(work_dir):
        raise ParameterError("the provided work_dir (-w flag) is not a "
                             "directory.")
    if build_ref_genome:
        incl_sarscov2 = str_to_bool('-S',incl_sarscov2)
        download_ensembl_files = str_to_bool('-L',download_ensembl_files)
    if pipeline_dir is None:
        pipeline_dir = os.getcwd()
    pipeline_dir = os.path.abspath(pipeline_dir)
    work_dir = os.path.abspath(work_dir)
    path_to_env = None
    if conda_envs_dir:
        path_to_env = os.path.join(os.path.abspath(conda_envs_dir),
                                   env_name)
    # Create the log and report what will be done
    with PipelineLog(os.path.join(work_dir,
                                  "LOG_LCA_pipeline_setup.log")) as log:
        log.echo("Lung Cell Atlas pipeline version: v%s" % version)
        log.echo("STEPS TO BE INCLUDED/SKIPPED:")
        log.echo("downloading of required files will be %s" %
                 ("included" if download_files else "skipped"))
        log.echo("creation of conda environment will be %s" %
                 ("included" if create_env else "skipped"))
        if build_ref_genome:
            log.echo("building of reference genome will be included")
            if not download_ensembl_files:
                log.echo("download of files from ensembl needed for "
                         "refgenome building will be skipped.")
            if incl_sarscov2:
                log.echo("Sars-cov2 genome will be added to the reference "
                         "genome.")
        else:
            log.echo("building of reference genome will be skipped")
        log.echo("Params:")
        log.echo("cellranger version expected: %s, Ensembl release: %s, "
                 "Genome release: %s, Species: %s" % (cellranger_version,
                                                      ensembl_release,
                                                      genome,
                                                      species))
        log.echo("nthreads: %s, memgb: %s" % (nthreads,memgb))
        if user_pass:
            log.echo("user:pass provided")
        log.echo("work directory: %s" % work_dir)
        log.echo("conda_envs_dir: %s" % conda_envs_dir)
        confirm_params(log,assume_yes=assume_yes,input_func=input_func)
        status = 0
        # Download the required files
        if download_files:
            download_pipeline_files(work_dir,download_url,user_pass,log)
        # Create conda environment
        if create_env or build_ref_genome:
            if conda is None:
                conda = CondaWrapper(env_dir=os.path.abspath(conda_envs_dir))
        if create_env:
            log.echo("Creating conda environment in %s... NOTE! This can "
                     "take a few hours..." % path_to_env)
            log.echo("start time: %s" % date_string())
            create_conda_env(conda,env_name,packages,
                             [os.path.join(work_dir,"conda-bld")] +
                             list(channels),
                             log)
            log.echo("End time: %s" % date_string())
        # Build reference genome
        if build_ref_genome:
            if not os.path.isdir(path_to_env):
                raise LCAPipelineError("Conda environment %s not found "
                                       "(run with -C true to create it)" %
                                       path_to_env)
            status = build_reference(work_dir,
                                     pipeline_dir,
                                     conda,
                                     path_to_env,
                                     ensembl_release=ensembl_release,
                                     genome=genome,
                                     species=species,
                                     cellranger_version=cellranger_version,
                                     nthreads=nthreads,
                                     memgb=memgb,
                                     incl_sarscov2=incl_sarscov2,
                                     download_ensembl_files=\
                                     download_ensembl_files,
                                     ensembl_base_url=ensembl_base_url,
                                     log=log,
                                     assume_yes=assume_yes,
                                     input_func=input_func)
        log.echo("End of script.")
    return status

#######################################################################
# Supporting functions
#######################################################################

def download_pipeline_files(work_dir,download_url,user_pass,log):
    """
    Download and unpack the files needed by the pipeline

    Fetches the downloads archive and its checksum file,
    verifies the archive and unpacks it into the working
    directory.

    Arguments:
      work_dir (str): working directory
      download_url (str): base URL to download from
      user_pass (str): 'USER:PASSWORD' credentials
      log (PipelineLog): log for the setup
    """
    tar_file = "%s.tar.gz" % DOWNLOADS_NAME
    checksum_file = "%s_CHECKSUM" % DOWNLOADS_NAME
    log.echo("We will download the necessary files now, this shouldn't "
             "take too long...")
    for f in (tar_file,checksum_file):
        curl = general.curl_download("%s/%s" % (download_url.rstrip('/'),f),
                                     os.path.join(work_dir,f),
                                     user=user_pass,
                                     insecure=True,
                                     fail_on_error=True)
        status = curl.run_subprocess(tee=log)
        if status != 0:
            raise ExternalCommandError("Failed to download %s" % f,
                                       cmdline=str(curl).replace(user_pass,
                                                                 "****"),
                                       status=status)
    log.echo("Done.")
    # Validate the download
    log.echo("Checking md5sum of downloaded file...")
    if verify_md5_checksums(os.path.join(work_dir,checksum_file),
                            base_dir=work_dir,
                            log=log):
        raise ChecksumError("md5sum check failed for %s" % tar_file)
    # Unpack and move contents into working directory
    log.echo("Unpacking downloaded tar file now...")
    extract_tar_archive(os.path.join(work_dir,tar_file),work_dir,log=log)
    log.echo("Done")
    move_dir_contents(os.path.join(work_dir,DOWNLOADS_NAME),work_dir)
    os.remove(os.path.join(work_dir,tar_file))

def create_conda_env(conda,env_name,packages,channels,log):
    """
    Create the conda environment for the pipeline

    Returns:
      String: path to the new environment.
    """
    return conda.create_env(env_name,*packages,channels=channels,log=log)

def build_reference(work_dir,pipeline_dir,conda,conda_env,
                    ensembl_release="99",genome="GRCh38",
                    species="homo_sapiens",cellranger_version="3.1.0",
                    nthreads=20,memgb=48,incl_sarscov2=False,
                    download_ensembl_files=True,
                    ensembl_base_url=ENSEMBL_FTP_URL,log=None,
                    assume_yes=False,input_func=input):
    """
    Build the reference genome in the 'refgenomes' directory

    The reference is built using cellranger from the conda
    environment. If the default genome parameters were used
    then the contents of the reference are also checked
    against the checksums shipped with the pipeline.

    Returns:
      Integer: 0 on success, 1 if the build failed or the
        checksums didn't match.
    """
    refgenomes_dir = os.path.join(work_dir,"refgenomes")
    if not os.path.isdir(refgenomes_dir):
        mkdir(refgenomes_dir)
    log.echo("Currently working in folder %s" % refgenomes_dir)
    if incl_sarscov2:
        log.echo("Including Sars-cov2 genome into the reference...")
        custom = dict(custom_name=SARS_COV2_NAME,
                      custom_fasta=os.path.join(pipeline_dir,
                                                SARS_COV2_FASTA),
                      custom_gtf=os.path.join(pipeline_dir,SARS_COV2_GTF))
    else:
        custom = dict()
    builder = ReferenceGenomeBuilder(ensembl_release=ensembl_release,
                                     genome=genome,
                                     species=species,
                                     cellranger_version=cellranger_version,
                                     nthreads=nthreads,
                                     memgb=memgb,
                                     force=download_ensembl_files,
                                     download=download_ensembl_files,
                                     ensembl_base_url=ensembl_base_url,
                                     conda=conda,
                                     conda_env=conda_env,
                                     **custom)
    log.echo("We will now start building the reference genome")
    log.echo("This might take a few hours. Start time: %s" % date_string())
    log.echo("For a detailed log of the genome building, check out the "
             "logfile in your %s folder!" % refgenomes_dir)
    if assume_yes:
        confirm_func = lambda: True
    else:
        confirm_func = lambda: confirm(input_func=input_func)
    status = builder.build(refgenomes_dir,confirm_func=confirm_func)
    # Copy the build log into the setup log
    log.append_file(os.path.join(refgenomes_dir,builder.log_file))
    if status != 0:
        log.echo("Building the reference genome failed")
    # Check contents against reference checksums
    params = dict(genome=genome,
                  ensembl_release=str(ensembl_release),
                  species=species,
                  cellranger_version=str(cellranger_version))
    if params == DEFAULT_REFERENCE:
        md5_file = "%s_%s_ensrel%s_cr%s%s.md5" % (species,
                                                 genome,
                                                 ensembl_release,
                                                 cellranger_version,
                                                 ("_%s" % SARS_COV2_NAME
                                                  if incl_sarscov2
                                                  else ""))
        md5_file = os.path.join(pipeline_dir,REFGENOMES_MD5_DIR,md5_file)
        log.echo("Checking md5sum of output folder...")
        if not os.path.isfile(md5_file):
            logger.warning("%s: checksum file not found, unable to check "
                           "reference genome" % md5_file)
        elif verify_md5_checksums(md5_file,base_dir=refgenomes_dir,log=log):
            status = 1
    log.echo("End time: %s" % date_string())
    return status
