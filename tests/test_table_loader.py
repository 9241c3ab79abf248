#!/usr/bin/env python3
"""Tests for the table loader, the registry and the DuckDB engine wrapper."""
import os
import tempfile
import unittest
from unittest import mock

from dirsql.core.errors import (
    EngineRegistrationError, IoError, NameCollisionError, ParseError, SqlError, UnknownFormat,
)
from dirsql.core.registry import TableRegistry
from dirsql.core.schema import ColumnType
from dirsql.core.sql_engine import SqlEngine
from dirsql.core.table_loader import TableLoader, derive_table_name, sanitize_table_name

USERS = "id,name,score,active\n1,alice,9.5,true\n2,bob,,false\n"


class NamingTests(unittest.TestCase):

    def test_derive_table_name(self):
        self.assertEqual(derive_table_name('/data/users.csv'), 'users')
        self.assertEqual(derive_table_name('/data/2024 sales-report.csv'), 't_2024_sales_report')
        self.assertEqual(derive_table_name('/data/.env'), 'env')
        self.assertEqual(derive_table_name('/data/archive.tar.csv'), 'archive_tar')

    def test_sanitize_is_idempotent(self):
        for text in ['users', '2024 sales-report', 'héllo wörld', '', '__x__']:
            once = sanitize_table_name(text)
            self.assertEqual(sanitize_table_name(once), once)
        self.assertEqual(sanitize_table_name(''), 'table')


class _Workspace(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = os.path.realpath(self.temp_dir.name)
        self.engine = SqlEngine()
        self.registry = TableRegistry(self.engine)
        self.loader = TableLoader()

    def tearDown(self):
        self.engine.close()
        self.temp_dir.cleanup()

    def write(self, rel: str, content: str) -> str:
        path = os.path.join(self.root, rel)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        return path


class LoaderTests(_Workspace):

    def test_read_types_columns(self):
        table = self.loader.read(self.write('users.csv', USERS))
        self.assertEqual(table.name, 'users')
        self.assertEqual(table.column_names, ['id', 'name', 'score', 'active'])
        self.assertEqual([c.type for c in table.columns],
                         [ColumnType.INTEGER, ColumnType.STRING, ColumnType.FLOAT, ColumnType.BOOLEAN])
        self.assertEqual(table.rows, [(1, 'alice', 9.5, True), (2, 'bob', None, False)])
        self.assertEqual(table.row_count, 2)

    def test_read_is_pure(self):
        self.loader.read(self.write('users.csv', USERS))
        self.assertEqual(len(self.registry), 0)

    def test_to_dataframe_uses_nullable_dtypes(self):
        df = self.loader.read(self.write('users.csv', USERS)).to_dataframe()
        self.assertEqual(list(df.columns), ['id', 'name', 'score', 'active'])
        self.assertEqual([str(t) for t in df.dtypes], ['Int64', 'string', 'Float64', 'boolean'])

    def test_missing_file(self):
        with self.assertRaises(IoError):
            self.loader.read(os.path.join(self.root, 'nope.csv'))

    def test_directory_is_not_a_file(self):
        os.makedirs(os.path.join(self.root, 'dir.csv'))
        with self.assertRaises(IoError):
            self.loader.read(os.path.join(self.root, 'dir.csv'))

    def test_unknown_format(self):
        with self.assertRaises(UnknownFormat):
            self.loader.read(self.write('notes', 'hello there\n'))

    def test_load_and_query(self):
        self.loader.load(self.write('users.csv', USERS), self.registry)
        result = self.engine.execute('select name from users where id = 2;')
        self.assertEqual(result.columns, ['name'])
        self.assertEqual(result.rows, [('bob',)])

    def test_toml_table_is_queryable(self):
        self.loader.load(self.write('conf.toml', '[[items]]\nid = 1\n[[items]]\nid = 2\n'), self.registry)
        result = self.engine.execute('select sum(id) as total from conf')
        self.assertEqual(result.rows[0][0], 3)

    def test_repeated_headers_keep_every_value(self):
        self.loader.load(self.write('h.csv', 'a,a,a_1\n1,2,3\n'), self.registry)
        result = self.engine.execute('select * from h')
        self.assertEqual(result.columns, ['a', 'a_1', 'a_1_1'])
        self.assertEqual(result.rows, [(1, 2, 3)])

    def test_huge_integer_text_stays_a_string(self):
        digits = '9' * 5000
        table = self.loader.read(self.write('big.csv', f'n\n{digits}\n'))
        self.assertIs(table.columns[0].type, ColumnType.STRING)
        self.assertEqual(table.rows, [(digits,)])

    def test_value_errors_become_parse_errors(self):
        path = self.write('users.csv', USERS)
        with mock.patch('dirsql.core.table_loader.build_table', side_effect=ValueError('bad value')):
            with self.assertRaises(ParseError) as cm:
                self.loader.read(path)
        self.assertIn('bad value', str(cm.exception))
        self.assertEqual(cm.exception.path, path)


class RegistryTests(_Workspace):

    def test_name_collision_gets_suffix(self):
        a = self.loader.load(self.write('a/users.csv', USERS), self.registry)
        b = self.loader.load(self.write('b/users.csv', USERS), self.registry)
        c = self.loader.load(self.write('c/users.csv', USERS), self.registry)
        self.assertEqual((a.name, b.name, c.name), ('users', 'users_2', 'users_3'))
        self.assertEqual(self.engine.execute('select count(*) from users_3').rows, [(2,)])

    def test_same_path_reloads_in_place(self):
        path = self.write('users.csv', USERS)
        self.loader.load(path, self.registry)
        self.write('users.csv', "id,name\n7,zed\n")
        again = self.loader.load(path, self.registry)
        self.assertEqual(again.name, 'users')
        self.assertEqual(self.registry.names(), ['users'])
        self.assertEqual(self.engine.execute('select id from users').rows, [(7,)])

    def test_interrupted_reload_keeps_view_and_mapping_in_sync(self):
        path = self.write('users.csv', USERS)
        self.loader.load(path, self.registry)
        self.write('users.csv', "id,name,extra\n7,zed,x\n")
        real_register = self.engine.register

        def register_then_interrupt(table):
            real_register(table)
            if 'extra' in table.column_names:
                raise KeyboardInterrupt

        with mock.patch.object(self.engine, 'register', side_effect=register_then_interrupt):
            with self.assertRaises(KeyboardInterrupt):
                self.loader.load(path, self.registry)
        self.assertEqual(self.registry.get('users').column_names, ['id', 'name'])
        self.assertEqual(self.engine.execute('select id from users order by id').rows, [(1,), (2,)])

    def test_force_replaces_other_source(self):
        self.loader.load(self.write('a/users.csv', USERS), self.registry)
        b_path = self.write('b/users.csv', "id\n42\n")
        replaced = self.loader.load(b_path, self.registry, force=True)
        self.assertEqual(replaced.name, 'users')
        self.assertEqual(len(self.registry), 1)
        self.assertEqual(self.registry.get('USERS').source_path, b_path)
        self.assertEqual(self.engine.execute('select id from users').rows, [(42,)])

    def test_error_policy(self):
        registry = TableRegistry(self.engine, collision_policy='error')
        self.loader.load(self.write('a/users.csv', USERS), registry)
        with self.assertRaises(NameCollisionError):
            self.loader.load(self.write('b/users.csv', USERS), registry)
        self.assertEqual(registry.names(), ['users'])

    def test_explicit_name(self):
        table = self.loader.load(self.write('users.csv', USERS), self.registry, name='people')
        self.assertEqual(table.name, 'people')
        with self.assertRaises(NameCollisionError):
            self.loader.load(self.write('other.csv', USERS), self.registry, name='people')
        self.assertEqual(self.registry.names(), ['people'])

    def test_reserved_name_leaves_registry_unchanged(self):
        self.loader.load(self.write('users.csv', USERS), self.registry)
        with self.assertRaises(EngineRegistrationError):
            self.loader.load(self.write('select.csv', USERS), self.registry)
        self.assertEqual(self.registry.names(), ['users'])
        self.assertEqual(self.engine.execute('select count(*) from users').rows, [(2,)])

    def test_remove(self):
        self.loader.load(self.write('users.csv', USERS), self.registry)
        self.registry.remove('users')
        self.assertNotIn('users', self.registry)
        with self.assertRaises(SqlError):
            self.engine.execute('select * from users')

    def test_find_by_path(self):
        path = self.write('users.csv', USERS)
        self.loader.load(path, self.registry)
        self.assertEqual(self.registry.find_by_path(path).name, 'users')
        self.assertIsNone(self.registry.find_by_path(os.path.join(self.root, 'x.csv')))


class EngineTests(unittest.TestCase):

    def setUp(self):
        self.engine = SqlEngine()

    def tearDown(self):
        self.engine.close()

    def test_syntax_error_is_sql_error(self):
        with self.assertRaises(SqlError) as cm:
            self.engine.execute('selec 1')
        self.assertEqual(cm.exception.sql, 'selec 1')

    def test_empty_statement(self):
        with self.assertRaises(SqlError):
            self.engine.execute(' ;; ')

    def test_nulls_come_back_as_none(self):
        result = self.engine.execute('select null as x, 1 as y')
        self.assertEqual(result.columns, ['x', 'y'])
        self.assertEqual(result.rows, [(None, 1)])

    def test_reserved_keywords(self):
        self.assertIn('select', self.engine.reserved_keywords())


if __name__ == "__main__":
    unittest.main()
