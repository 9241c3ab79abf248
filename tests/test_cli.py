#!/usr/bin/env python3
"""Tests for the command-line entry point and its exit codes."""
import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

from dirsql.cli.main import build_parser, main
from dirsql.utils.constants import (
    EXIT_ERROR, EXIT_FATAL_IO, EXIT_NO_MATCH, EXIT_OK, EXIT_PARSE_ERROR, EXIT_QUERY_ERROR,
)


class CliTests(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = os.path.realpath(self.temp_dir.name)
        self.data = os.path.join(self.root, 'data')
        os.makedirs(self.data)
        with open(os.path.join(self.data, 'users.csv'), 'w', encoding='utf-8') as f:
            f.write("id,name\n1,alice\n2,bob\n")
        with open(os.path.join(self.data, 'bad.csv'), 'w', encoding='utf-8') as f:
            f.write("ragged,row,count\n1,2\n")
        self.cfg = os.path.join(self.root, 'config.json')
        with open(self.cfg, 'w', encoding='utf-8') as f:
            json.dump({}, f)
        self.history = os.path.join(self.root, 'history')

    def tearDown(self):
        self.temp_dir.cleanup()

    def run_cli(self, *argv, base=True):
        args = ['--config', self.cfg, '-C', self.data, *argv] if base else list(argv)
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            with self.assertRaises(SystemExit) as cm:
                main(args)
        return cm.exception.code, out.getvalue(), err.getvalue()

    def test_one_shot_query(self):
        code, out, _err = self.run_cli('users.csv', '-c', 'select name from users where id = 2')
        self.assertEqual(code, EXIT_OK)
        self.assertIn('bob', out)
        self.assertIn('(1 row)', out)

    def test_tree_mode_flag(self):
        code, out, _err = self.run_cli('users.csv', '-m', 'tree', '-c', 'select id from users where id = 1')
        self.assertEqual(code, EXIT_OK)
        self.assertIn('└── id: 1', out)

    def test_one_shot_load_command(self):
        code, out, err = self.run_cli('-c', '\\load users.csv bad.csv')
        self.assertEqual(code, EXIT_OK)
        self.assertIn('1 loaded, 1 failed', out)
        self.assertIn('ParseError', err)
        code, _out, _err = self.run_cli('-c', '\\load bad.csv')
        self.assertEqual(code, EXIT_PARSE_ERROR)
        code, _out, _err = self.run_cli('-c', '\\reload nope')
        self.assertEqual(code, EXIT_ERROR)

    def test_partial_load_still_succeeds(self):
        code, out, err = self.run_cli('*.csv', '-c', 'select count(*) from users')
        self.assertEqual(code, EXIT_OK)
        self.assertIn('ParseError', err)

    def test_no_match(self):
        code, _out, err = self.run_cli('*.parquet', '-c', 'select 1')
        self.assertEqual(code, EXIT_NO_MATCH)
        self.assertIn('No files matched', err)

    def test_every_file_failed(self):
        code, _out, _err = self.run_cli('bad.csv', '-c', 'select 1')
        self.assertEqual(code, EXIT_PARSE_ERROR)

    def test_query_error(self):
        code, _out, err = self.run_cli('users.csv', '-c', 'select * from nope')
        self.assertEqual(code, EXIT_QUERY_ERROR)
        self.assertTrue(err.startswith('SqlError: '))

    def test_meta_command(self):
        code, out, _err = self.run_cli('-c', '\\dt')
        self.assertEqual(code, EXIT_OK)
        self.assertIn('(no tables loaded)', out)
        code, _out, err = self.run_cli('-c', '\\frobnicate')
        self.assertEqual(code, EXIT_ERROR)
        self.assertIn('UsageError', err)

    def test_bad_pattern(self):
        code, _out, err = self.run_cli('data[abc', '-c', 'select 1')
        self.assertEqual(code, EXIT_ERROR)
        self.assertIn('PatternError', err)

    def test_missing_working_directory(self):
        code, _out, _err = self.run_cli('--config', self.cfg, '-C', os.path.join(self.root, 'nope'),
                                        '-c', 'select 1', base=False)
        self.assertEqual(code, EXIT_FATAL_IO)

    def test_missing_config_file(self):
        code, _out, err = self.run_cli('--config', os.path.join(self.root, 'missing.json'),
                                       '-c', 'select 1', base=False)
        self.assertEqual(code, EXIT_FATAL_IO)
        self.assertIn('ConfigError', err)

    def test_interactive_session(self):
        lines = iter(['\\load users.csv', 'select name from users order by id', '\\q'])
        with mock.patch('builtins.input', side_effect=lambda prompt='': next(lines)):
            code, out, _err = self.run_cli('--no-banner', '--history-file', self.history)
        self.assertEqual(code, EXIT_OK)
        self.assertIn('alice', out)
        with open(self.history, encoding='utf-8') as f:
            self.assertEqual(len(f.read().splitlines()), 3)

    def test_interactive_ctrl_c_and_eof(self):
        def fake_input(prompt=''):
            fake_input.calls += 1
            if fake_input.calls == 1:
                raise KeyboardInterrupt
            raise EOFError
        fake_input.calls = 0
        with mock.patch('builtins.input', side_effect=fake_input):
            code, out, _err = self.run_cli('--history-file', self.history)
        self.assertEqual(code, EXIT_OK)
        self.assertIn('^C', out)
        self.assertIn('SQL over your CSV and TOML files', out)

    def test_history_file_failure(self):
        lines = iter(['select 1', '\\q'])
        with mock.patch('builtins.input', side_effect=lambda prompt='': next(lines)):
            code, _out, err = self.run_cli('--no-banner', '--history-file', self.data)
        self.assertEqual(code, EXIT_FATAL_IO)
        self.assertIn('HistoryWriteError', err)

    def test_parser_defaults(self):
        args = build_parser().parse_args([])
        self.assertEqual(args.paths, [])
        self.assertIsNone(args.command)
        self.assertIsNone(args.log_level)


if __name__ == "__main__":
    unittest.main()
