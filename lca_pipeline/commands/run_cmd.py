#!/usr/bin/env python
#
#     run_cmd.py: implement the LCA pipeline 'run' command
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
#########################################################################

#######################################################################
# Imports
#######################################################################

import os
import shutil
import logging
from .. import get_version
from ..applications import nextflow
from ..conda import CondaWrapper
from ..conda import LCA_CONDA_ENV_NAME
from ..fileops import make_tar_archive
from ..fileops import mkdir
from ..fileops import upload_file
from ..fileops import UploadTarget
from ..pipelinelog import PipelineLog
from ..utils import check_resources
from ..utils import confirm
from ..utils import date_string
from ..utils import str_to_bool
from ..utils import strip_trailing_slash
from ..utils import timestamp
from ..exceptions import LCAPipelineError
from ..exceptions import NotConfirmedError
from ..exceptions import ParameterError

# Module specific logger
logger = logging.getLogger(__name__)

#######################################################################
# Constants
#######################################################################

# Location of the nextflow script and config within the pipeline dir
NEXTFLOW_SCRIPT = os.path.join("src","sc_processing_r7.nf")
NEXTFLOW_CONFIG = os.path.join("conf","nextflow.config")

PROFILES = ('local','cluster',)

#######################################################################
# Command functions
#######################################################################

def run(profile=None,conda_env_dir_path=None,sitename=None,
        dataset_name=None,upload=None,upload_link=None,sample_table=None,
        out_dir=None,localcores=24,localmemgb=80,samtools_thr=12,
        queue=None,cluster_options=None,pipeline_dir=None,
        env_name=LCA_CONDA_ENV_NAME,upload_password=None,conda=None,
        assume_yes=False,input_func=input):
    """
    Run the LCA cellranger pipeline on a dataset

    Runs the nextflow pipeline for the samples in the sample
    table, in a new 'pipelinerun_v<VERSION>' subdirectory of
    the output directory; the outputs (excluding BAM files)
    are then archived and optionally uploaded.

    Arguments:
      profile (str): either 'local' or 'cluster'
      conda_env_dir_path (str): path to the conda environment
        (must end with the environment name)
      sitename (str): name of the site (converted to upper
        case)
      dataset_name (str): name of the dataset
      upload (str): 'true' or 'false', whether to upload the
        archived outputs
      upload_link (str): link to upload to (required if
        'upload' is true)
      sample_table (str): path to the file with the sample
        information
      out_dir (str): existing directory to write outputs to
      localcores (int): number of cores for cellranger
      localmemgb (int): memory in Gb for cellranger
      samtools_thr (int): number of threads for samtools
      queue (str): optional, cluster queue
      cluster_options (str): optional, extra options for
        cluster job submission
      pipeline_dir (str): path to the LCA pipeline checkout
        (default: current directory)
      env_name (str): expected name of the conda environment
      upload_password (str): optional, password for the
        upload link
      conda (CondaWrapper): optional, conda wrapper to use
        for activating the environment
      assume_yes (bool): if True then don't prompt the user
        to confirm the parameters
      input_func (function): function to get the response to
        the confirmation prompt

    Returns:
      Integer: 0 on success, 1 if the upload failed.
    """
    print("Checking if all necessary arguments were passed...")
    sitename,upload = check_common_params(profile,
                                          conda_env_dir_path,
                                          env_name,
                                          sitename,
                                          upload,
                                          upload_link)
    if not dataset_name:
        raise ParameterError("No dataset name provided. Dataset_name "
                             "should be provided under flag -n.")
    out_dir = check_out_dir(out_dir)
    if not sample_table:
        raise ParameterError("no argument was provided for the -x flag. "
                             "It should be set to the path for your "
                             "sample.xls file.")
    if not os.path.isfile(sample_table):
        raise ParameterError("path to sample.xls file provided under -x "
                             "flag does not lead to a file. Please "
                             "correct path.")
    sample_table = os.path.abspath(sample_table)
    pipeline_dir = check_pipeline_dir(pipeline_dir)
    # Set up the run directory
    version = get_version()
    run_dir_name = "pipelinerun_v%s" % version
    pipeline_run_dir = os.path.join(out_dir,run_dir_name)
    if os.path.exists(pipeline_run_dir):
        raise LCAPipelineError("There is already a directory named '%s' "
                               "in your outdir '%s'! Remove it or change "
                               "out_dir under flag -o." % (run_dir_name,
                                                           out_dir))
    print("creating directory '%s' in output directory" % run_dir_name)
    mkdir(os.path.join(pipeline_run_dir,"run"),recursive=True)
    with PipelineLog(os.path.join(pipeline_run_dir,
                                  "LOG_LCA_pipeline_run.log")) as log:
        log.echo("Lung Cell Atlas pipeline version: v%s" % version)
        log.echo("PARAMETERS:")
        log.echo("upload output files to Helmholtz server automatically: "
                 "%s" % str(upload).lower())
        log.echo("n cores for cellranger: %s, n cores for samtools: %s, "
                 "localmemGB: %s" % (localcores,samtools_thr,localmemgb))
        log.echo("profile: %s" % profile)
        log.echo("output dir: %s" % out_dir)
        log.echo("file with sample information: %s" % sample_table)
        log.echo("sitename: %s" % sitename)
        log.echo("dataset name: %s" % dataset_name)
        log.echo("path to conda environment directory: %s" %
                 conda_env_dir_path)
        if profile == 'local':
            check_resources(localcores,localmemgb)
        confirm_params(log,assume_yes=assume_yes,input_func=input_func)
        # Run the pipeline
        nf_cmd = nextflow.run(os.path.join(pipeline_dir,NEXTFLOW_SCRIPT),
                              profile,
                              os.path.join(pipeline_dir,NEXTFLOW_CONFIG),
                              pipeline_run_dir,
                              sample_table,
                              conda_env_dir_path,
                              localcores,
                              localmemgb,
                              samtools_thr,
                              queue=queue,
                              cluster_options=cluster_options,
                              background=False)
        run_nextflow(nf_cmd,conda_env_dir_path,
                     os.path.join(pipeline_run_dir,"run"),
                     log,
                     conda=conda)
        # Archive and upload
        tar_file = archive_output(out_dir,
                                  run_dir_name,
                                  "%s_%s_%s.%s.tar.gz" % (sitename,
                                                          dataset_name,
                                                          timestamp(),
                                                          run_dir_name),
                                  log)
        status = 0
        if upload:
            status = upload_output(tar_file,upload_link,
                                   password=upload_password,
                                   log=log)
        log.echo("End of script!")
    return status

#######################################################################
# Supporting functions
#######################################################################

def check_common_params(profile,conda_env_dir_path,env_name,sitename,
                        upload,upload_link):
    """
    Check the parameters shared by the 'run' and 'testrun' commands

    Arguments:
      profile (str): execution profile
      conda_env_dir_path (str): path to the conda environment
      env_name (str): expected name of the conda environment
      sitename (str): name of the site
      upload (str): 'true' or 'false'
      upload_link (str): link to upload to

    Returns:
      Tuple: the sitename converted to upper case and
        the boolean value of 'upload'.

    Raises:
      ParameterError: if any of the parameters are invalid.
    """
    if profile not in PROFILES:
        raise ParameterError("-p [profile] argument should be set to "
                             "either local or cluster!")
    if not conda_env_dir_path:
        raise ParameterError("No path to the directory of the conda "
                             "environment %s was passed under flag -e." %
                             env_name)
    if not os.path.isdir(conda_env_dir_path):
        raise ParameterError("conda environment path is not a directory.")
    if not strip_trailing_slash(conda_env_dir_path).endswith(env_name):
        raise ParameterError("Environment name (path to conda environment "
                             "under flag -e) does not end with %s." %
                             env_name)
    if not sitename:
        raise ParameterError("No sitename provided. Sitename should be "
                             "provided under flag -s.")
    if upload is None or upload == '':
        raise ParameterError("no argument was provided under the -u flag. "
                             "it should be set to either true or false.")
    upload = str_to_bool('-u',upload)
    if upload:
        if not upload_link:
            raise ParameterError("-u is set to true, but no upload link "
                                 "was provided under -l.")
        # Check that the link is usable
        UploadTarget(upload_link)
    return (sitename.upper(),upload)

def check_out_dir(out_dir):
    """
    Check the output directory and return its full path
    """
    if not out_dir:
        raise ParameterError("No output directory was provided under "
                             "flag -o.")
    if not os.path.isdir(out_dir):
        raise ParameterError("output dir %s is not a directory." % out_dir)
    if out_dir != strip_trailing_slash(out_dir):
        print("removing trailing slash from out_dir.")
        out_dir = strip_trailing_slash(out_dir)
    return os.path.abspath(out_dir)

def check_pipeline_dir(pipeline_dir):
    """
    Check the pipeline directory and return its full path

    The directory must contain the nextflow script and
    config file.
    """
    if pipeline_dir is None:
        pipeline_dir = os.getcwd()
    pipeline_dir = os.path.abspath(pipeline_dir)
    for f in (NEXTFLOW_SCRIPT,NEXTFLOW_CONFIG):
        if not os.path.isfile(os.path.join(pipeline_dir,f)):
            raise ParameterError("%s not found in pipeline directory %s "
                                 "(use --pipeline-dir to specify the "
                                 "location of the LCA pipeline)" %
                                 (f,pipeline_dir))
    return pipeline_dir

def confirm_params(log,assume_yes=False,input_func=input):
    """
    Ask the user to confirm the parameters

    Raises NotConfirmedError if the parameters are not
    confirmed.
    """
    if not assume_yes:
        if not confirm(input_func=input_func):
            log.echo("Parameters not confirmed, exit.")
            raise NotConfirmedError("Parameters not confirmed, exit.")
    log.echo("Parameters confirmed.")

def run_nextflow(nf_cmd,conda_env,run_dir,log,conda=None):
    """
    Run nextflow inside the conda environment

    Output is sent to stdout and the log. Afterwards there
    must be a 'cellranger' directory in the parent of the
    run directory, otherwise an exception is raised; the
    command should run nextflow in the foreground (i.e.
    without '-bg') so that the check (and any subsequent
    archiving) happens after the pipeline has finished.

    Arguments:
      nf_cmd (Command): nextflow command
      conda_env (str): path to the conda environment
      run_dir (str): directory to run nextflow in
      log (PipelineLog): log for the run
      conda (CondaWrapper): optional, conda wrapper

    Returns:
      Integer: exit status from nextflow.
    """
    if conda is None:
        conda = CondaWrapper()
    log.echo("Activating conda environment....")
    log.echo("Running nextflow command now, this will take a while.... "
             "Start time nf run: %s" % date_string())
    logger.debug("Nextflow command: %s" % nf_cmd)
    status = conda.run_in_env(nf_cmd,conda_env,
                              working_dir=run_dir,
                              tee=log)
    log.echo("Done. End time nf run: %s" % date_string())
    if status != 0:
        logger.warning("nextflow finished with non-zero exit status "
                       "(%s)" % status)
    cellranger_dir = os.path.join(os.path.dirname(run_dir),"cellranger")
    if not os.path.isdir(cellranger_dir):
        log.echo("Something must have gone wrong with your nextflow run. "
                 "No cellranger directory was created.")
        raise LCAPipelineError("No cellranger directory found in %s" %
                               os.path.dirname(run_dir))
    log.echo("Ok")
    return status

def archive_output(out_dir,dir_name,tar_name,log):
    """
    Archive the pipeline outputs

    Creates a gzipped tar archive of a directory (excluding
    BAM files, BAM indexes and the 'run' subdirectory), and
    then moves the archive into that directory.

    Arguments:
      out_dir (str): output directory containing the
        directory to archive
      dir_name (str): name of the directory to archive
      tar_name (str): name for the archive file
      log (PipelineLog): log for the run

    Returns:
      String: final path to the archive.
    """
    src_dir = os.path.join(out_dir,dir_name)
    tar_file = os.path.join(out_dir,tar_name)
    log.echo("Compressing the output of your pipeline run into the file: "
             "%s excluding .bam and .bai files, and excluding ./run "
             "directory..." % tar_file)
    make_tar_archive(tar_file,src_dir,log=log)
    log.echo("Done")
    final_tar_file = os.path.join(src_dir,tar_name)
    shutil.move(tar_file,final_tar_file)
    return final_tar_file

def upload_output(tar_file,upload_link,password=None,log=None):
    """
    Upload the archived outputs

    Returns:
      Integer: 0 on success, 1 if the upload failed.
    """
    log.echo("We will now upload output to Helmholtz secure folder")
    if upload_file(tar_file,upload_link,password=password,log=log) != 0:
        log.echo("Upload of %s failed" % os.path.basename(tar_file))
        return 1
    log.echo("Upload complete")
    return 0
