"""Tests for raw partition writing and DuckDB loading."""
import duckdb
import pytest

from reportlake_core.database_utils import get_table_columns, safe_scalar, table_exists
from reportlake_core.exceptions import DatabaseOperationError, DataIngestionError
from reportlake_core.loader import (
    RawPartitionWriter,
    ensure_core_tables,
    file_id,
    load_partition,
    partition_path,
)


@pytest.fixture
def test_conn():
    """Create in-memory database connection with core tables."""
    conn = duckdb.connect(':memory:')
    ensure_core_tables(conn)
    return conn


def write_partition(raw_dir, lines, date_key='2021-06-01', source='dv', name='daily', **kw):
    writer = RawPartitionWriter(raw_dir, source, date_key, name, **kw)
    with writer:
        writer.handle_fields(lines[0].split(','))
        for line in lines[1:]:
            writer.push_line(line)
    return writer


class TestRawPartitionWriter:
    """Test writing raw CSV partitions."""

    def test_partition_layout(self, tmp_path):
        path = partition_path(tmp_path, 'dv', '2021-06-01', 'daily')
        assert path == tmp_path / 'dv' / 'dt=2021-06-01' / 'daily.csv'
        assert partition_path(tmp_path, 'dv', '2021/06/01', 'daily').parent.name == 'dt=2021-06-01'

    def test_writes_header_and_rows(self, tmp_path):
        writer = write_partition(tmp_path, ['name,val', 'a,1', 'b,2'])
        assert writer.published == writer.path
        assert writer.path.read_text(encoding='utf-8') == 'name,val\na,1\nb,2\n'
        assert writer.rows == 2
        assert writer.fields == ['name', 'val']
        assert not writer.tmp_path.exists()

    def test_failure_leaves_no_partition(self, tmp_path):
        writer = RawPartitionWriter(tmp_path, 'dv', '2021-06-01', 'daily')
        with pytest.raises(RuntimeError):
            with writer:
                writer.handle_fields(['a'])
                writer.push_line('1')
                raise RuntimeError('connection reset')
        assert not writer.path.exists()
        assert not writer.tmp_path.exists()
        assert writer.published is None

    def test_empty_report_publishes_nothing(self, tmp_path):
        writer = RawPartitionWriter(tmp_path, 'dv', '2021-06-01', 'daily')
        with writer:
            pass
        assert writer.published is None
        assert not writer.path.exists()

    def test_write_without_open_fails(self, tmp_path):
        writer = RawPartitionWriter(tmp_path, 'dv', '2021-06-01', 'daily')
        with pytest.raises(DataIngestionError):
            writer.push_line('x')

    def test_should_skip_existing(self, tmp_path):
        write_partition(tmp_path, ['a', '1'])
        assert RawPartitionWriter(tmp_path, 'dv', '2021-06-01', 'daily').should_skip
        assert not RawPartitionWriter(tmp_path, 'dv', '2021-06-01', 'daily', overwrite=True).should_skip
        assert not RawPartitionWriter(tmp_path, 'dv', '2021-06-02', 'daily').should_skip


class TestLoadPartition:
    """Test loading partitions into DuckDB."""

    def test_file_id_is_content_hash(self, tmp_path):
        a = tmp_path / 'a.csv'
        b = tmp_path / 'b.csv'
        a.write_text('x\n1\n')
        b.write_text('x\n1\n')
        assert file_id(a) == file_id(b)
        assert len(file_id(a)) == 64

    def test_first_load_creates_table(self, test_conn, tmp_path):
        writer = write_partition(tmp_path, ['name,day', 'a,2021-06-01', 'b,2021-06-01'])
        result = load_partition(test_conn, 'dv', '2021-06-01', writer.path)
        assert result == {'table': 'raw_dv', 'rows': 2, 'loaded': True}
        assert table_exists(test_conn, 'raw_dv')
        assert get_table_columns(test_conn, 'raw_dv') == ['report_dt', 'name', 'day']
        rows = test_conn.execute("SELECT report_dt, name, day FROM raw_dv ORDER BY name").fetchall()
        assert rows == [('2021-06-01', 'a', '2021-06-01'), ('2021-06-01', 'b', '2021-06-01')]
        assert safe_scalar(test_conn, "SELECT rows FROM processed_files WHERE dt='2021-06-01'") == 2

    def test_report_own_dt_column_is_kept(self, test_conn, tmp_path):
        writer = write_partition(tmp_path, ['dt,val', '2021-05-30,1'])
        assert writer.path.parent.name == 'dt=2021-06-01'
        load_partition(test_conn, 'src', '2021-06-01', writer.path)
        assert get_table_columns(test_conn, 'raw_src') == ['report_dt', 'dt', 'val']
        rows = test_conn.execute("SELECT report_dt, dt, val FROM raw_src").fetchall()
        assert rows == [('2021-06-01', '2021-05-30', '1')]

    def test_same_content_loaded_once(self, test_conn, tmp_path):
        writer = write_partition(tmp_path, ['name', 'a'])
        load_partition(test_conn, 'dv', '2021-06-01', writer.path)
        again = load_partition(test_conn, 'dv', '2021-06-01', writer.path)
        assert again['loaded'] is False
        assert safe_scalar(test_conn, "SELECT COUNT(*) FROM raw_dv") == 1

    def test_new_columns_are_added(self, test_conn, tmp_path):
        first = write_partition(tmp_path, ['name,val', 'a,1'], date_key='2021-06-01')
        second = write_partition(tmp_path, ['name,extra', 'b,x'], date_key='2021-06-02')
        load_partition(test_conn, 'dv', '2021-06-01', first.path)
        load_partition(test_conn, 'dv', '2021-06-02', second.path)
        assert get_table_columns(test_conn, 'raw_dv') == ['report_dt', 'name', 'val', 'extra']
        rows = test_conn.execute("SELECT report_dt, name, val, extra FROM raw_dv ORDER BY report_dt").fetchall()
        assert rows == [('2021-06-01', 'a', '1', None), ('2021-06-02', 'b', None, 'x')]

    def test_reload_replaces_date(self, test_conn, tmp_path):
        first = write_partition(tmp_path, ['name', 'a', 'b'])
        load_partition(test_conn, 'dv', '2021-06-01', first.path)
        second = write_partition(tmp_path, ['name', 'c'], overwrite=True)
        load_partition(test_conn, 'dv', '2021-06-01', second.path)
        names = [r[0] for r in test_conn.execute("SELECT name FROM raw_dv").fetchall()]
        assert names == ['c']

    def test_database_errors_are_wrapped(self, test_conn, tmp_path):
        writer = write_partition(tmp_path, ['name', 'a'])
        test_conn.execute("CREATE VIEW raw_dv AS SELECT 1 AS report_dt")
        with pytest.raises(DatabaseOperationError):
            load_partition(test_conn, 'dv', '2021-06-01', writer.path)
