#!/usr/bin/env python3
"""Tests for the shell session: dispatch, history and error reporting."""
import io
import json
import os
import tempfile
import unittest

from dirsql.cli.commands import Load
from dirsql.cli.repl import Session, SessionState
from dirsql.core.errors import HistoryWriteError
from dirsql.core.render import OutputMode
from dirsql.utils.config import Config

USERS = "id,name\n1,alice\n2,bob\n"


class SessionTests(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = os.path.realpath(self.temp_dir.name)
        self.data = os.path.join(self.root, 'data')
        os.makedirs(os.path.join(self.data, 'sub'))
        self.write('users.csv', USERS)
        self.write('bad.csv', 'ragged,row,count\n1,2\n')
        self.write('sub/orders.toml', '[[orders]]\nid = 1\nuser_id = 2\n')
        cfg = os.path.join(self.root, 'config.json')
        with open(cfg, 'w', encoding='utf-8') as f:
            json.dump({"workers": 2}, f)
        self.config = Config(cfg, apply_env=False)
        self.history_file = os.path.join(self.root, 'state', 'history')
        self.out = io.StringIO()
        self.err = io.StringIO()
        self.sess = Session(self.config, working_directory=self.data, history_file=self.history_file,
                            out=self.out, err=self.err)

    def tearDown(self):
        self.sess.close()
        self.temp_dir.cleanup()

    def write(self, rel: str, content: str) -> str:
        path = os.path.join(self.data, rel)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        return path

    def reset_output(self):
        self.out.seek(0)
        self.out.truncate()
        self.err.seek(0)
        self.err.truncate()

    def test_load_and_query(self):
        self.assertTrue(self.sess.submit('\\load *.csv'))
        self.assertEqual(self.sess.registry.names(), ['users'])
        errors = self.err.getvalue().splitlines()
        self.assertEqual(len(errors), 1)
        self.assertTrue(errors[0].startswith('ParseError: '))
        self.assertIn('line 2', errors[0])
        self.assertIn('1 loaded, 1 failed', self.out.getvalue())

        self.reset_output()
        self.sess.submit('select name from users where id = 2;')
        self.assertEqual(self.sess.last_result.rows, [('bob',)])
        self.assertIn('bob', self.out.getvalue())
        self.assertEqual(self.sess.state, SessionState.IDLE)

    def test_load_records_its_report(self):
        self.sess.submit('\\load *.csv')
        self.assertEqual([t.name for t in self.sess.last_report.loaded], ['users'])
        self.assertEqual(len(self.sess.last_report.failed), 1)
        self.sess.submit('select 1')
        self.assertIsNone(self.sess.last_report)

    def test_load_huge_integer_file(self):
        self.write('big.csv', 'n\n' + '4' * 5000 + '\n')
        self.assertTrue(self.sess.submit('\\load big.csv'))
        self.assertEqual(self.sess.registry.names(), ['big'])
        self.assertEqual(self.err.getvalue(), '')

    def test_recursive_load_and_join(self):
        self.sess.submit('\\load **/*.{csv,toml}')
        self.assertEqual(sorted(self.sess.registry.names()), ['orders', 'users'])
        self.sess.submit('select u.name from orders o join users u on u.id = o.user_id')
        self.assertEqual(self.sess.last_result.rows, [('bob',)])

    def test_history_is_written_before_dispatch(self):
        self.sess.submit('\\load users.csv')
        self.sess.submit('select * from missing_table')
        self.sess.submit('')
        with open(self.history_file, encoding='utf-8') as f:
            self.assertEqual(f.read().splitlines(), ['\\load users.csv', 'select * from missing_table'])
        self.assertEqual(self.sess.history, ['\\load users.csv', 'select * from missing_table'])

    def test_history_write_failure_is_fatal(self):
        broken = Session(self.config, working_directory=self.data, history_file=self.data,
                         out=self.out, err=self.err)
        try:
            with self.assertRaises(HistoryWriteError):
                broken.submit('select 1')
        finally:
            broken.close()

    def test_show_and_clear_history(self):
        self.sess.submit('select 1')
        self.sess.submit('select 2')
        self.reset_output()
        self.sess.submit('\\history 1')
        self.assertEqual(self.out.getvalue().strip(), '3  \\history 1')
        self.sess.submit('\\history clear')
        self.assertEqual(self.sess.history, [])
        with open(self.history_file, encoding='utf-8') as f:
            self.assertEqual(f.read(), '')

    def test_query_error_leaves_registry_alone(self):
        self.sess.submit('\\load users.csv')
        self.reset_output()
        self.sess.submit('select * from nowhere')
        self.assertTrue(self.err.getvalue().startswith('SqlError: '))
        self.assertEqual(len(self.err.getvalue().strip().splitlines()), 1)
        self.assertEqual(self.sess.registry.names(), ['users'])
        self.assertEqual(self.sess.state, SessionState.IDLE)

    def test_unknown_meta_command(self):
        self.assertTrue(self.sess.submit('\\frobnicate'))
        self.assertTrue(self.err.getvalue().startswith('UsageError: unknown command'))

    def test_quit(self):
        self.assertFalse(self.sess.submit('\\q'))
        self.assertEqual(self.sess.state, SessionState.EXITED)

    def test_load_as_name(self):
        self.sess.submit('\\load users.csv as people')
        self.assertEqual(self.sess.registry.names(), ['people'])
        self.sess.submit('\\load *.toml sub/*.toml as x')
        self.assertIn('UsageError', self.err.getvalue())

    def test_no_match(self):
        report = self.sess.load(['*.parquet'])
        self.assertEqual(report.loaded, [])
        self.assertIn('No files matched', self.out.getvalue())

    def test_dispatch_command_value(self):
        self.sess.dispatch(Load(['users.csv']))
        self.assertIn('users', self.sess.registry)

    def test_describe_and_list(self):
        self.sess.submit('\\load users.csv')
        self.reset_output()
        self.sess.submit('\\d users')
        self.assertIn('integer', self.out.getvalue())
        self.reset_output()
        self.sess.submit('\\dt')
        self.assertIn('users.csv', self.out.getvalue())
        self.sess.submit('\\d nothing')
        self.assertIn('UsageError: no such table: nothing', self.err.getvalue())

    def test_reload(self):
        self.sess.submit('\\load users.csv')
        self.write('users.csv', USERS + "3,carol\n")
        self.sess.submit('\\reload users')
        self.sess.submit('select count(*) from users')
        self.assertEqual(self.sess.last_result.rows, [(3,)])
        self.assertEqual(self.sess.registry.names(), ['users'])

    def test_tree_mode(self):
        self.sess.submit('\\load users.csv')
        self.sess.submit('\\mode tree')
        self.assertIs(self.sess.output_mode, OutputMode.TREE)
        self.reset_output()
        self.sess.submit('select id from users order by id')
        self.assertEqual(self.out.getvalue().splitlines(), [
            '2 rows', '├── row 1', '│   └── id: 1', '└── row 2', '    └── id: 2',
        ])

    def test_tree_command(self):
        self.sess.submit('\\tree')
        text = self.out.getvalue()
        self.assertIn('users.csv', text)
        self.assertIn('├── sub', text)
        self.assertIn('│   └── orders.toml', text)
        self.reset_output()
        self.sess.submit('\\load users.csv')
        self.reset_output()
        self.sess.submit('\\tree users')
        self.assertEqual(self.out.getvalue().splitlines()[0], 'users')

    def test_export(self):
        self.sess.submit('\\load users.csv')
        self.sess.submit('select name from users where id = 2')
        self.sess.submit('\\export csv out/result.csv')
        with open(os.path.join(self.data, 'out', 'result.csv'), encoding='utf-8') as f:
            self.assertEqual(f.read(), 'name\nbob\n')
        self.reset_output()
        self.sess.submit('\\export jsonl')
        self.assertEqual(self.out.getvalue(), '{"name":"bob"}\n')

    def test_export_without_result(self):
        self.sess.submit('\\export csv')
        self.assertTrue(self.err.getvalue().startswith('ValidationError: '))

    def test_change_directory(self):
        self.sess.submit('\\cd sub')
        self.assertEqual(self.sess.working_directory, os.path.join(self.data, 'sub'))
        self.sess.submit('\\load *.toml')
        self.assertEqual(self.sess.registry.names(), ['orders'])
        self.sess.submit('\\cd does-not-exist')
        self.assertIn('Directory not found', self.err.getvalue())
        self.reset_output()
        self.sess.submit('\\pwd')
        self.assertEqual(self.out.getvalue().strip(), os.path.join(self.data, 'sub'))

    def test_help(self):
        self.sess.submit('\\help')
        self.assertIn('\\load', self.out.getvalue())
        self.reset_output()
        self.sess.submit('\\help export')
        self.assertIn('\\export', self.out.getvalue())
        self.sess.submit('\\help nope')
        self.assertIn('UsageError', self.err.getvalue())


if __name__ == "__main__":
    unittest.main()
