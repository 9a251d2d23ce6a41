#######################################################################
# Tests for cli/lca_pipeline.py
#######################################################################

import unittest
import tempfile
import shutil
import os
from textwrap import dedent
from lca_pipeline.settings import Settings
from lca_pipeline.mock import MockConda
from lca_pipeline.mock import MockNextflow
from lca_pipeline.mock import MockCellranger
from lca_pipeline.mock import MockCurl
from lca_pipeline.mock import make_mock_pipeline_dir
from lca_pipeline.mock import make_mock_ensembl_release
from lca_pipeline.cli.lca_pipeline import main as lca_pipeline
from lca_pipeline.cli.lca_pipeline import get_upload_password

# Set to False to keep test output dirs
REMOVE_TEST_OUTPUTS = True

# Unit tests

class TestLCAPipelineCli(unittest.TestCase):
    """
    Tests for the 'lca_pipeline.py' commands
    """
    def setUp(self):
        # Create a temp working dir
        self.dirn = tempfile.mkdtemp(suffix='TestLCAPipelineCli')
        # Store original location and PATH
        self.pwd = os.getcwd()
        self.save_path = os.environ['PATH']
        # Create local settings file
        self.local_settings_file = os.path.join(self.dirn,"settings.ini")
        with open(self.local_settings_file,"wt") as s:
            s.write(dedent("""
            [general]
            localcores = 1
            localmemgb = 1
            samtools_thr = 1

            [ensembl]
            base_url = ftp://ftp.example.org/pub
            """))
        # Temporarily point config to local version
        self.lca_pipeline_conf = os.environ.get('LCA_PIPELINE_CONF')
        os.environ['LCA_PIPELINE_CONF'] = self.local_settings_file
        # Directory for mock executables
        self.bin = os.path.join(self.dirn,"bin")
        os.mkdir(self.bin)
        os.environ['PATH'] = "%s%s%s" % (self.bin,
                                         os.pathsep,
                                         os.environ['PATH'])

    def tearDown(self):
        # Restore configuration environment variable
        if self.lca_pipeline_conf is not None:
            os.environ['LCA_PIPELINE_CONF'] = self.lca_pipeline_conf
        else:
            del(os.environ['LCA_PIPELINE_CONF'])
        # Return to original dir and restore PATH
        os.chdir(self.pwd)
        os.environ['PATH'] = self.save_path
        # Remove the temporary test directory
        if REMOVE_TEST_OUTPUTS:
            shutil.rmtree(self.dirn)

    def test_run(self):
        """
        lca_pipeline.py run: run pipeline on a dataset
        """
        # Mock conda with environment containing nextflow
        conda_dir = MockConda.create(os.path.join(self.dirn,"conda"))
        os.environ['PATH'] = "%s%s%s" % (os.path.join(conda_dir,"bin"),
                                         os.pathsep,
                                         os.environ['PATH'])
        env_dir = os.path.join(conda_dir,"envs","cr3-velocyto-scanpy")
        os.makedirs(os.path.join(env_dir,"bin"))
        MockNextflow.create(os.path.join(env_dir,"bin","nextflow"))
        # Pipeline checkout, sample table and output directory
        pipeline_dir = make_mock_pipeline_dir(
            os.path.join(self.dirn,"LCA_pipeline"))
        sample_table = os.path.join(self.dirn,"Samples.xls")
        with open(sample_table,'wt') as fp:
            fp.write("sample\tfastq_dir\n"
                     "LCA_01\t/data/fastqs/LCA_01\n")
        out_dir = os.path.join(self.dirn,"output")
        os.mkdir(out_dir)
        # Run the command
        self.assertEqual(lca_pipeline(['run',
                                       '-p','local',
                                       '-e',env_dir,
                                       '-s','munich',
                                       '-n','lung_atlas',
                                       '-u','false',
                                       '-x',sample_table,
                                       '-o',out_dir,
                                       '--pipeline-dir',pipeline_dir,
                                       '--yes']),0)
        run_dir = os.path.join(out_dir,"pipelinerun_v0.1.0")
        self.assertTrue(os.path.exists(
            os.path.join(run_dir,"cellranger","LCA_01","outs",
                         "filtered_feature_bc_matrix","matrix.mtx")))
        # Resources were taken from the settings
        with open(os.path.join(run_dir,"run","nextflow_args.txt"),
                  'rt') as fp:
            nf_args = fp.read().split('\n')
        self.assertEqual(nf_args[12:18],
                         ["--localcores","1",
                          "--localmemGB","1",
                          "--samtools_thr","1"])
        archives = [f for f in os.listdir(run_dir) if f.endswith(".tar.gz")]
        self.assertEqual(len(archives),1)
        self.assertTrue(archives[0].startswith("MUNICH_lung_atlas_"))

    def test_run_missing_parameters(self):
        """
        lca_pipeline.py run: fail for missing parameters
        """
        self.assertEqual(lca_pipeline(['run','-p','local','--yes']),1)
        self.assertEqual(lca_pipeline(['run','-p','desktop','--yes']),1)

    def test_testrun_missing_parameters(self):
        """
        lca_pipeline.py testrun: fail for missing parameters
        """
        self.assertEqual(lca_pipeline(['testrun','-p','local','--yes']),1)

    def test_setup_missing_work_dir(self):
        """
        lca_pipeline.py setup: fail if working directory is missing
        """
        self.assertEqual(lca_pipeline(['setup',
                                       '-D','false',
                                       '-C','false',
                                       '-R','false',
                                       '--yes']),1)

    def test_setup_bad_flag(self):
        """
        lca_pipeline.py setup: fail for invalid 'true'/'false' flag
        """
        self.assertEqual(lca_pipeline(['setup',
                                       '-w',self.dirn,
                                       '-D','false',
                                       '-C','false',
                                       '-R','sometimes',
                                       '--yes']),1)

    def test_setup_no_steps(self):
        """
        lca_pipeline.py setup: run with all steps skipped
        """
        self.assertEqual(lca_pipeline(['setup',
                                       '-w',self.dirn,
                                       '-D','false',
                                       '-C','false',
                                       '-R','false',
                                       '--yes']),0)
        log_file = os.path.join(self.dirn,"LOG_LCA_pipeline_setup.log")
        with open(log_file,'rt') as fp:
            log = fp.read().split('\n')
        for line in ("downloading of required files will be skipped",
                     "creation of conda environment will be skipped",
                     "building of reference genome will be skipped",
                     "End of script."):
            self.assertTrue(line in log,"'%s' not found in log" % line)

    def test_mkref(self):
        """
        lca_pipeline.py mkref: build reference in current directory
        """
        server = os.path.join(self.dirn,"server")
        os.mkdir(server)
        make_mock_ensembl_release(server,release="100")
        MockCurl.create(os.path.join(self.bin,"curl"),source_dir=server)
        MockCellranger.create(os.path.join(self.bin,"cellranger"))
        out_dir = os.path.join(self.dirn,"refgenomes")
        os.mkdir(out_dir)
        os.chdir(out_dir)
        self.assertEqual(lca_pipeline(['mkref',
                                       '-e','100',
                                       '-t','1',
                                       '-m','1',
                                       '--yes']),0)
        self.assertEqual(sorted(os.listdir(out_dir)),
                         ["homo_sapiens_GRCh38_ensrel100_cr3.1.0",
                          "homo_sapiens_GRCh38_ensrel100_cr3.1.0.log",
                          "homo_sapiens_GRCh38_ensrel100_cr3.1.0.md5"])

    def test_mkref_bad_force_flag(self):
        """
        lca_pipeline.py mkref: fail for invalid force flag
        """
        os.chdir(self.dirn)
        self.assertEqual(lca_pipeline(['mkref','-u','yes','--yes']),1)

    def test_config(self):
        """
        lca_pipeline.py config: report the settings
        """
        self.assertEqual(lca_pipeline(['config']),0)

    def test_config_set(self):
        """
        lca_pipeline.py config: update the settings file
        """
        self.assertEqual(lca_pipeline(['config',
                                       '--set','general.localcores=8',
                                       '--set',
                                       'setup.species=mus_musculus']),0)
        settings = Settings(self.local_settings_file)
        self.assertEqual(settings.general.localcores,8)
        self.assertEqual(settings.general.localmemgb,1)
        self.assertEqual(settings.setup.species,"mus_musculus")
        self.assertEqual(settings.ensembl.base_url,
                         "ftp://ftp.example.org/pub")

    def test_config_set_bad_value(self):
        """
        lca_pipeline.py config: fail for badly formed setting
        """
        self.assertEqual(lca_pipeline(['config',
                                       '--set','general.localcores']),1)

    def test_config_set_wrong_type(self):
        """
        lca_pipeline.py config: fail for value of wrong type
        """
        self.assertEqual(lca_pipeline(['config',
                                       '--set','general.localcores=abc']),1)
        settings = Settings(self.local_settings_file)
        self.assertEqual(settings.general.localcores,1)
        self.assertEqual(lca_pipeline(['config']),0)

    def test_bad_value_in_settings_file(self):
        """
        lca_pipeline.py: fail cleanly for bad value in settings file
        """
        with open(self.local_settings_file,"wt") as s:
            s.write(dedent("""
            [general]
            localcores = abc
            """))
        self.assertEqual(lca_pipeline(['config']),1)

class TestGetUploadPassword(unittest.TestCase):
    """
    Tests for the 'get_upload_password' function
    """
    def setUp(self):
        self.password = os.environ.get('LCA_UPLOAD_PASSWORD')
        if self.password is not None:
            del(os.environ['LCA_UPLOAD_PASSWORD'])

    def tearDown(self):
        if self.password is not None:
            os.environ['LCA_UPLOAD_PASSWORD'] = self.password
        elif 'LCA_UPLOAD_PASSWORD' in os.environ:
            del(os.environ['LCA_UPLOAD_PASSWORD'])

    def test_get_upload_password(self):
        """
        get_upload_password: password from command line or environment
        """
        class MockArgs:
            def __init__(self,upload_password=None):
                self.upload_password = upload_password
        self.assertEqual(get_upload_password(MockArgs()),None)
        self.assertEqual(get_upload_password(MockArgs("secret")),"secret")
        os.environ['LCA_UPLOAD_PASSWORD'] = "from_env"
        self.assertEqual(get_upload_password(MockArgs()),"from_env")
        self.assertEqual(get_upload_password(MockArgs("secret")),"secret")
