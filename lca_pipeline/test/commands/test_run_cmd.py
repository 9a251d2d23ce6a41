#######################################################################
# Tests for run_cmd.py module
#######################################################################

import unittest
import os
import tempfile
import tarfile
import shutil
from lca_pipeline.conda import CondaWrapper
from lca_pipeline.mock import MockConda
from lca_pipeline.mock import MockNextflow
from lca_pipeline.mock import MockCurl
from lca_pipeline.mock import make_mock_pipeline_dir
from lca_pipeline.exceptions import LCAPipelineError
from lca_pipeline.exceptions import NotConfirmedError
from lca_pipeline.exceptions import ParameterError
from lca_pipeline.commands.run_cmd import run
from lca_pipeline.commands.run_cmd import check_common_params
from lca_pipeline.commands.run_cmd import check_out_dir
from lca_pipeline.commands.run_cmd import check_pipeline_dir

# Set to False to keep test output dirs
REMOVE_TEST_OUTPUTS = True

# Unit tests

class TestRunCommand(unittest.TestCase):
    """
    Tests for the 'run' command
    """
    def setUp(self):
        # Create a temp working dir
        self.dirn = tempfile.mkdtemp(suffix='TestRunCommand')
        # Store original location and PATH
        self.pwd = os.getcwd()
        self.save_path = os.environ['PATH']
        # Mock conda installation and environment
        conda_dir = MockConda.create(os.path.join(self.dirn,"conda"))
        self.conda = CondaWrapper(conda=os.path.join(conda_dir,"bin",
                                                     "conda"))
        self.env_dir = os.path.join(self.dirn,"envs","cr3-velocyto-scanpy")
        os.makedirs(os.path.join(self.env_dir,"bin"))
        # Mock pipeline checkout
        self.pipeline_dir = make_mock_pipeline_dir(
            os.path.join(self.dirn,"LCA_pipeline"))
        # Output directory
        self.out_dir = os.path.join(self.dirn,"output")
        os.mkdir(self.out_dir)
        # Sample table
        self.sample_table = os.path.join(self.dirn,"Samples.xls")
        with open(self.sample_table,'wt') as fp:
            fp.write("sample\tfastq_dir\n"
                     "LCA_01\t/data/fastqs/LCA_01\n"
                     "LCA_02\t/data/fastqs/LCA_02\n")
        # Upload area and mock curl
        self.uploads = os.path.join(self.dirn,"uploads")
        os.mkdir(self.uploads)
        bin_dir = os.path.join(self.dirn,"bin")
        os.mkdir(bin_dir)
        MockCurl.create(os.path.join(bin_dir,"curl"),
                        upload_dir=self.uploads)
        os.environ['PATH'] = "%s%s%s" % (bin_dir,
                                         os.pathsep,
                                         os.environ['PATH'])

    def tearDown(self):
        # Return to original dir and restore PATH
        os.chdir(self.pwd)
        os.environ['PATH'] = self.save_path
        # Remove the temporary test directory
        if REMOVE_TEST_OUTPUTS:
            shutil.rmtree(self.dirn)

    def _run(self,**kws):
        # Internal: run the command with default arguments
        args = dict(profile="local",
                    conda_env_dir_path=self.env_dir,
                    sitename="Munich",
                    dataset_name="lung_atlas",
                    upload="false",
                    sample_table=self.sample_table,
                    out_dir=self.out_dir,
                    localcores=1,
                    localmemgb=1,
                    samtools_thr=1,
                    pipeline_dir=self.pipeline_dir,
                    conda=self.conda,
                    assume_yes=True)
        args.update(kws)
        return run(**args)

    def test_run(self):
        """
        run: run pipeline and archive outputs
        """
        MockNextflow.create(os.path.join(self.env_dir,"bin","nextflow"))
        status = self._run()
        self.assertEqual(status,0)
        run_dir = os.path.join(self.out_dir,"pipelinerun_v0.1.0")
        self.assertTrue(os.path.isdir(run_dir))
        # Check outputs
        for sample in ("LCA_01","LCA_02"):
            self.assertTrue(os.path.exists(
                os.path.join(run_dir,"cellranger",sample,"outs",
                             "filtered_feature_bc_matrix","matrix.mtx")))
        # Check nextflow command line
        with open(os.path.join(run_dir,"run","nextflow_args.txt"),
                  'rt') as fp:
            nf_args = fp.read().split('\n')
        self.assertEqual(nf_args,
                         ["run",
                          os.path.join(self.pipeline_dir,"src",
                                       "sc_processing_r7.nf"),
                          "-profile","local",
                          "-c",os.path.join(self.pipeline_dir,"conf",
                                            "nextflow.config"),
                          "--outdir","%s/" % run_dir,
                          "--samplesheet",self.sample_table,
                          "--condaenvpath",self.env_dir,
                          "--localcores","1",
                          "--localmemGB","1",
                          "--samtools_thr","1",
                          ""])
        # Check log file
        log_file = os.path.join(run_dir,"LOG_LCA_pipeline_run.log")
        with open(log_file,'rt') as fp:
            log = fp.read()
        for line in ("Lung Cell Atlas pipeline version: v0.1.0",
                     "sitename: MUNICH",
                     "dataset name: lung_atlas",
                     "Parameters confirmed.",
                     "N E X T F L O W  ~  version 19.10.0",
                     "Ok",
                     "End of script!"):
            self.assertTrue(line in log.split('\n'),
                            "'%s' not found in log" % line)
        # Check archive
        archives = [f for f in os.listdir(run_dir) if f.endswith(".tar.gz")]
        self.assertEqual(len(archives),1)
        self.assertTrue(archives[0].startswith("MUNICH_lung_atlas_"))
        self.assertTrue(archives[0].endswith(".pipelinerun_v0.1.0.tar.gz"))
        self.assertEqual(os.listdir(self.out_dir),["pipelinerun_v0.1.0"])
        with tarfile.open(os.path.join(run_dir,archives[0]),'r:gz') as tf:
            members = tf.getnames()
        self.assertTrue("pipelinerun_v0.1.0/LOG_LCA_pipeline_run.log"
                        in members)
        self.assertTrue("pipelinerun_v0.1.0/cellranger/LCA_01/outs/"
                        "filtered_feature_bc_matrix/matrix.mtx" in members)
        for m in members:
            self.assertFalse(m.endswith(".bam"),"%s in archive" % m)
            self.assertFalse(m.endswith(".bai"),"%s in archive" % m)
            self.assertFalse(m.startswith("pipelinerun_v0.1.0/run"),
                             "%s in archive" % m)
        # Nothing uploaded
        self.assertEqual(os.listdir(self.uploads),[])

    def test_run_with_cluster_options(self):
        """
        run: pass queue and cluster options to nextflow
        """
        MockNextflow.create(os.path.join(self.env_dir,"bin","nextflow"))
        status = self._run(profile="cluster",
                           queue="gpu_p",
                           cluster_options="qos=icb_other --nice=1000")
        self.assertEqual(status,0)
        run_dir = os.path.join(self.out_dir,"pipelinerun_v0.1.0")
        with open(os.path.join(run_dir,"run","nextflow_args.txt"),
                  'rt') as fp:
            nf_args = fp.read().split('\n')
        self.assertEqual(nf_args[2:4],["-profile","cluster"])
        self.assertEqual(nf_args[-5:],["--queue","gpu_p",
                                       "--clusterOpt",
                                       "qos=icb_other --nice=1000",
                                       ""])
        self.assertFalse("-bg" in nf_args)

    def test_run_and_upload(self):
        """
        run: run pipeline and upload archive
        """
        MockNextflow.create(os.path.join(self.env_dir,"bin","nextflow"))
        status = self._run(upload="true",
                           upload_link="https://cloud.example.org/index.php/"
                           "s/AbCd1234",
                           upload_password="secret")
        self.assertEqual(status,0)
        uploaded = [f for f in os.listdir(self.uploads)
                    if f.endswith(".tar.gz")]
        self.assertEqual(len(uploaded),1)
        self.assertTrue(uploaded[0].startswith("MUNICH_lung_atlas_"))
        with open(os.path.join(self.uploads,"curl_uploads.txt"),'rt') as fp:
            details = fp.read().rstrip('\n').split('\t')
        self.assertEqual(details[1],
                         "https://cloud.example.org/public.php/webdav/%s" %
                         uploaded[0])
        self.assertEqual(details[2],"AbCd1234:secret")

    def test_run_upload_fails(self):
        """
        run: return non-zero status if upload fails
        """
        MockNextflow.create(os.path.join(self.env_dir,"bin","nextflow"))
        os.remove(os.path.join(self.dirn,"bin","curl"))
        MockCurl.create(os.path.join(self.dirn,"bin","curl"),exit_code=22)
        status = self._run(upload="true",
                           upload_link="https://cloud.example.org/index.php/"
                           "s/AbCd1234")
        self.assertEqual(status,1)
        # Archive is still created
        run_dir = os.path.join(self.out_dir,"pipelinerun_v0.1.0")
        self.assertEqual(len([f for f in os.listdir(run_dir)
                              if f.endswith(".tar.gz")]),1)

    def test_run_no_cellranger_outputs(self):
        """
        run: raise exception if nextflow doesn't produce outputs
        """
        MockNextflow.create(os.path.join(self.env_dir,"bin","nextflow"),
                            no_outputs=True)
        self.assertRaises(LCAPipelineError,self._run)
        log_file = os.path.join(self.out_dir,"pipelinerun_v0.1.0",
                                "LOG_LCA_pipeline_run.log")
        with open(log_file,'rt') as fp:
            self.assertTrue("Something must have gone wrong with your "
                            "nextflow run. No cellranger directory was "
                            "created." in fp.read())

    def test_run_not_confirmed(self):
        """
        run: stop if the user doesn't confirm the parameters
        """
        MockNextflow.create(os.path.join(self.env_dir,"bin","nextflow"))
        self.assertRaises(NotConfirmedError,
                          self._run,
                          assume_yes=False,
                          input_func=lambda prompt: "n")
        run_dir = os.path.join(self.out_dir,"pipelinerun_v0.1.0")
        self.assertFalse(os.path.exists(os.path.join(run_dir,"cellranger")))

    def test_run_confirmed_by_user(self):
        """
        run: continue if the user confirms the parameters
        """
        MockNextflow.create(os.path.join(self.env_dir,"bin","nextflow"))
        status = self._run(assume_yes=False,
                           input_func=lambda prompt: "yes")
        self.assertEqual(status,0)

    def test_run_existing_run_dir(self):
        """
        run: raise exception if run directory already exists
        """
        os.mkdir(os.path.join(self.out_dir,"pipelinerun_v0.1.0"))
        self.assertRaises(LCAPipelineError,self._run)

    def test_run_missing_dataset_name(self):
        """
        run: raise exception if dataset name is missing
        """
        self.assertRaises(ParameterError,self._run,dataset_name=None)

    def test_run_bad_sample_table(self):
        """
        run: raise exception if sample table is missing
        """
        self.assertRaises(ParameterError,self._run,sample_table=None)
        self.assertRaises(ParameterError,self._run,
                          sample_table=os.path.join(self.dirn,"missing.xls"))

    def test_run_uses_current_dir_as_pipeline_dir(self):
        """
        run: pipeline directory defaults to current directory
        """
        MockNextflow.create(os.path.join(self.env_dir,"bin","nextflow"))
        os.chdir(self.pipeline_dir)
        status = self._run(pipeline_dir=None)
        self.assertEqual(status,0)
        # No nextflow files in current directory
        os.chdir(self.dirn)
        out_dir = os.path.join(self.dirn,"output2")
        os.mkdir(out_dir)
        self.assertRaises(ParameterError,self._run,pipeline_dir=None,
                          out_dir=out_dir)

class TestCheckCommonParams(unittest.TestCase):
    """
    Tests for the 'check_common_params' function
    """
    def setUp(self):
        # Create a temp working dir
        self.dirn = tempfile.mkdtemp(suffix='TestCheckCommonParams')
        self.env_dir = os.path.join(self.dirn,"envs","cr3-velocyto-scanpy")
        os.makedirs(self.env_dir)

    def tearDown(self):
        # Remove the temporary test directory
        if REMOVE_TEST_OUTPUTS:
            shutil.rmtree(self.dirn)

    def test_check_common_params(self):
        """
        check_common_params: valid parameters
        """
        self.assertEqual(check_common_params("local",self.env_dir,
                                             "cr3-velocyto-scanpy",
                                             "munich","false",None),
                         ("MUNICH",False))
        self.assertEqual(check_common_params("cluster",
                                             "%s/" % self.env_dir,
                                             "cr3-velocyto-scanpy",
                                             "Munich","TRUE",
                                             "sftp://sftp.example.org"),
                         ("MUNICH",True))

    def test_check_common_params_bad_profile(self):
        """
        check_common_params: profile must be 'local' or 'cluster'
        """
        for profile in (None,"","slurm"):
            try:
                check_common_params(profile,self.env_dir,
                                    "cr3-velocyto-scanpy",
                                    "munich","false",None)
                self.fail("ParameterError not raised")
            except ParameterError as ex:
                self.assertEqual(str(ex),
                                 "-p [profile] argument should be set to "
                                 "either local or cluster!")

    def test_check_common_params_bad_env_dir(self):
        """
        check_common_params: environment must exist and have correct name
        """
        self.assertRaises(ParameterError,check_common_params,
                          "local",None,"cr3-velocyto-scanpy",
                          "munich","false",None)
        self.assertRaises(ParameterError,check_common_params,
                          "local",os.path.join(self.dirn,"missing"),
                          "cr3-velocyto-scanpy","munich","false",None)
        self.assertRaises(ParameterError,check_common_params,
                          "local",os.path.join(self.dirn,"envs"),
                          "cr3-velocyto-scanpy","munich","false",None)

    def test_check_common_params_missing_sitename(self):
        """
        check_common_params: sitename must be supplied
        """
        self.assertRaises(ParameterError,check_common_params,
                          "local",self.env_dir,"cr3-velocyto-scanpy",
                          None,"false",None)

    def test_check_common_params_bad_upload(self):
        """
        check_common_params: upload flag and link are checked
        """
        for upload in (None,"","yes"):
            self.assertRaises(ParameterError,check_common_params,
                              "local",self.env_dir,"cr3-velocyto-scanpy",
                              "munich",upload,None)
        self.assertRaises(ParameterError,check_common_params,
                          "local",self.env_dir,"cr3-velocyto-scanpy",
                          "munich","true",None)
        self.assertRaises(ParameterError,check_common_params,
                          "local",self.env_dir,"cr3-velocyto-scanpy",
                          "munich","true","/not/a/link")

class TestCheckDirs(unittest.TestCase):
    """
    Tests for the 'check_out_dir' and 'check_pipeline_dir' functions
    """
    def setUp(self):
        # Create a temp working dir
        self.dirn = tempfile.mkdtemp(suffix='TestCheckDirs')

    def tearDown(self):
        # Remove the temporary test directory
        if REMOVE_TEST_OUTPUTS:
            shutil.rmtree(self.dirn)

    def test_check_out_dir(self):
        """
        check_out_dir: return path without trailing slash
        """
        self.assertEqual(check_out_dir("%s/" % self.dirn),self.dirn)
        self.assertRaises(ParameterError,check_out_dir,None)
        self.assertRaises(ParameterError,check_out_dir,
                          os.path.join(self.dirn,"missing"))

    def test_check_pipeline_dir(self):
        """
        check_pipeline_dir: directory must contain nextflow files
        """
        pipeline_dir = make_mock_pipeline_dir(os.path.join(self.dirn,
                                                           "LCA_pipeline"))
        self.assertEqual(check_pipeline_dir(pipeline_dir),pipeline_dir)
        os.remove(os.path.join(pipeline_dir,"conf","nextflow.config"))
        self.assertRaises(ParameterError,check_pipeline_dir,pipeline_dir)
