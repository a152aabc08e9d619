#!/usr/bin/env python3

"""
Pytest coverage for the command line front end.
"""

# Standard Library
import json
import os
import sys

# PIP3 modules
import pytest
import yaml

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

# tests helpers
TESTS_DIR = os.path.abspath(os.path.dirname(__file__))
if TESTS_DIR not in sys.path:
	sys.path.insert(0, TESTS_DIR)
from timeline_fixtures import make_clip, make_item, runtime_document

# local repo modules
import clipforge_cli
from clipforgelib.core import utils

#============================================

@pytest.fixture(autouse=True)
def reset_quiet():
	yield
	utils.set_quiet_mode(False)

#============================================

def test_dump_plan_prints_graph(tmp_path, capsys) -> None:
	document = runtime_document([make_clip('c1')], [
		make_item('i1', 'c1', position=0.0, in_sec=2.0, out_sec=7.0),
		make_item('i2', 'ghost', position=5.0),
	])
	project_file = tmp_path / 'project.json'
	project_file.write_text(json.dumps(document))
	assert clipforge_cli.main(['-q', 'export', '-p', str(project_file), '--dump-plan']) == 0
	summary = yaml.safe_load(capsys.readouterr().out)
	assert summary['mode'] == 'concat'
	assert summary['inputs'] == ['/media/c1.mp4']
	assert len(summary['segments']) == 1
	assert len(summary['warnings']) == 1
	assert summary['filter_complex'].startswith('[0:v]trim=start=2:end=7,')

#============================================

def test_export_without_output_is_a_usage_error(tmp_path) -> None:
	with pytest.raises(SystemExit):
		clipforge_cli.parse_args(['export', '-p', str(tmp_path / 'project.json')])

#============================================

def test_empty_timeline_returns_error_code(tmp_path, capsys) -> None:
	project_file = tmp_path / 'project.yml'
	project_file.write_text(yaml.safe_dump(runtime_document([make_clip('c1')], [])))
	code = clipforge_cli.main(['-q', 'export', '-p', str(project_file),
		'-o', str(tmp_path / 'out.mp4')])
	assert code == 1
	assert 'no track items' in capsys.readouterr().err

#============================================

def test_probe_of_missing_file_returns_error_code(tmp_path, capsys) -> None:
	assert clipforge_cli.main(['-q', 'probe', str(tmp_path / 'absent.webm')]) == 1
	assert 'file not found' in capsys.readouterr().err
