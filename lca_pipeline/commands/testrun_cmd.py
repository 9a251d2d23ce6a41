#!/usr/bin/env python
#
#     testrun_cmd.py: implement the LCA pipeline 'testrun' command
#     Copyright (C) Helmholtz Zentrum Muenchen 2020
#
#########################################################################

#######################################################################
# Imports
#######################################################################

import os
import logging
from .. import get_version
from ..applications import nextflow
from ..checksums import verify_md5_checksums
from ..conda import LCA_CONDA_ENV_NAME
from ..fileops import mkdir
from ..pipelinelog import PipelineLog
from ..utils import check_resources
from ..utils import strip_trailing_slash
from ..utils import timestamp
from ..exceptions import ParameterError
from .run_cmd import NEXTFLOW_SCRIPT
from .run_cmd import NEXTFLOW_CONFIG
from .run_cmd import archive_output
from .run_cmd import check_common_params
from .run_cmd import check_pipeline_dir
from .run_cmd import confirm_params
from .run_cmd import run_nextflow
from .run_cmd import upload_output

# Module specific logger
logger = logging.getLogger(__name__)

#######################################################################
# Constants
#######################################################################

SAMPLES_TEMPLATE = os.path.join("test","Samples_testdata_template.xls")

#######################################################################
# Command functions
#######################################################################

def testrun(profile=None,conda_env_dir_path=None,sitename=None,
            upload=None,upload_link=None,out_dir=None,work_dir=None,
            localcores=24,localmemgb=80,samtools_thr=12,queue=None,
            cluster_options=None,pipeline_dir=None,
            env_name=LCA_CONDA_ENV_NAME,upload_password=None,conda=None,
            assume_yes=False,input_func=input):
    """
    Perform a test run of the LCA cellranger pipeline

    Runs the nextflow pipeline on the test data downloaded
    during setup, in a new 'testrun_v<VERSION>' subdirectory
    of the output directory. The cellranger outputs are
    checked against the expected MD5 checksums before being
    archived and optionally uploaded.

    Arguments:
      profile (str): either 'local' or 'cluster'
      conda_env_dir_path (str): path to the conda environment
        (must end with the environment name)
      sitename (str): name of the site (converted to upper
        case)
      upload (str): 'true' or 'false', whether to upload the
        archived outputs
      upload_link (str): link to upload to (required if
        'upload' is true)
      out_dir (str): existing directory to write outputs to
      work_dir (str): working directory used for setup (must
        contain 'refgenomes' and 'testdata' subdirectories)
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
      Integer: 0 on success, 1 if the checksums didn't match
        or the upload failed.
    """
    version = get_version()
    test_dir_name = "testrun_v%s" % version
    print("Checking if all necessary arguments were passed...")
    sitename,upload = check_common_params(profile,
                                          conda_env_dir_path,
                                          env_name,
                                          sitename,
                                          upload,
                                          upload_link)
    if not out_dir:
        raise ParameterError("no argument for output directory was "
                             "provided under -o flag.")
    if not os.path.isdir(out_dir):
        raise ParameterError("output dir %s as provided under -o flag is "
                             "not a directory." % out_dir)
    if out_dir != strip_trailing_slash(out_dir):
        print("removing trailing slash from outdir.")
    out_dir = os.path.abspath(strip_trailing_slash(out_dir))
    test_dir = os.path.join(out_dir,test_dir_name)
    if os.path.exists(test_dir):
        raise ParameterError("directory '%s' already exists. Please "
                             "remove %s directory." % (test_dir,
                                                       test_dir_name))
    work_dir = check_work_dir(work_dir)
    pipeline_dir = check_pipeline_dir(pipeline_dir)
    samples_template = os.path.join(pipeline_dir,SAMPLES_TEMPLATE)
    if not os.path.isfile(samples_template):
        raise ParameterError("Sample file template %s not found" %
                             samples_template)
    # Set up the test run directory
    run_dir = os.path.join(test_dir,"run")
    mkdir(run_dir,recursive=True)
    print("directory for testrun created: %s" % run_dir)
    with PipelineLog(os.path.join(test_dir,
                                  "LOG_LCA_pipeline_testrun.log")) as log:
        log.echo("Lung Cell Atlas pipeline version: v%s" % version)
        log.echo("PARAMETERS:")
        log.echo("upload output files to Helmholtz server automatically: "
                 "%s" % str(upload).lower())
        log.echo("n cores for cellranger: %s, n cores for samtools: %s, "
                 "localmemGB: %s" % (localcores,samtools_thr,localmemgb))
        log.echo("profile: %s" % profile)
        log.echo("sitename: %s" % sitename)
        log.echo("path to conda environment directory: %s" %
                 conda_env_dir_path)
        log.echo("out_dir (testdir appended): %s" % test_dir)
        log.echo("work_dir: %s" % work_dir)
        if profile == 'local':
            check_resources(localcores,localmemgb)
        confirm_params(log,assume_yes=assume_yes,input_func=input_func)
        # Generate the sample file
        sample_file = os.path.join(test_dir,"Samples_testdata_testrun.txt")
        make_sample_file(samples_template,sample_file,work_dir)
        log.echo("Using %s as sample file." % sample_file)
        # Run the pipeline
        nf_cmd = nextflow.run(os.path.join(pipeline_dir,NEXTFLOW_SCRIPT),
                              profile,
                              os.path.join(pipeline_dir,NEXTFLOW_CONFIG),
                              test_dir,
                              sample_file,
                              conda_env_dir_path,
                              localcores,
                              localmemgb,
                              samtools_thr,
                              queue=queue,
                              cluster_options=cluster_options,
                              background=False)
        run_nextflow(nf_cmd,conda_env_dir_path,run_dir,log,conda=conda)
        # Check the outputs
        status = 0
        log.echo("We will now do an md5sum check on cellranger output:")
        failed = verify_md5_checksums(os.path.join(work_dir,
                                                   "testdata",
                                                   "CHECKSUM_testrun"),
                                      base_dir=run_dir,
                                      log=log)
        if failed:
            logger.error("Test run outputs don't match the expected "
                         "outputs")
            status = 1
        # Archive and upload
        tar_file = archive_output(out_dir,
                                  test_dir_name,
                                  "%s_%s.%s.tar.gz" % (sitename,
                                                       timestamp(),
                                                       test_dir_name),
                                  log)
        if upload:
            if upload_output(tar_file,upload_link,
                             password=upload_password,
                             log=log) != 0:
                status = 1
        log.echo("End of script!")
    return status

#######################################################################
# Supporting functions
#######################################################################

def check_work_dir(work_dir):
    """
    Check the working directory and return its full path

    The directory must have 'refgenomes' and 'testdata'
    subdirectories (created by the setup command).
    """
    if not work_dir:
        raise ParameterError("no argument for work directory was "
                             "provided under -w flag.")
    if not os.path.isdir(work_dir):
        raise ParameterError("work dir %s as provided under -w flag is "
                             "not a directory." % work_dir)
    if work_dir != strip_trailing_slash(work_dir):
        print("removing trailing slash from work dir.")
    work_dir = os.path.abspath(strip_trailing_slash(work_dir))
    for subdir,contents in (('refgenomes',"the refgenome was built"),
                            ('testdata',"the testdata were downloaded")):
        if not os.path.isdir(os.path.join(work_dir,subdir)):
            raise ParameterError("work dir %s as provided under -w flag "
                                 "has no subdirectory named '%s'. Make "
                                 "sure the workdirectory corresponds to "
                                 "the work directory provided during "
                                 "pipeline setup. This is the folder "
                                 "where %s." % (work_dir,subdir,contents))
    return work_dir

def make_sample_file(template,sample_file,work_dir):
    """
    Generate the sample file for the test run

    Replaces all instances of '{workdir}' in the template
    with the path to the working directory.
    """
    with open(template,'rt') as fp:
        samples = fp.read()
    with open(sample_file,'wt') as fp:
        fp.write(samples.replace("{workdir}",work_dir))
    return sample_file
