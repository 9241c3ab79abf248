"""File loading, schema inference, the SQL engine wrapper and result rendering."""
