"""Constants used throughout the dirsql package."""

# Output modes for query results and listings
SUPPORTED_OUTPUT_MODES = ['table', 'tree']
DEFAULT_OUTPUT_MODE = 'table'

# Formats accepted by \export
SUPPORTED_EXPORT_FORMATS = ['csv', 'json', 'jsonl', 'table']
DEFAULT_EXPORT_FORMAT = 'csv'

# File extensions mapped to source formats
FORMAT_EXTENSIONS = {
    '.csv': 'csv',
    '.toml': 'toml',
}

# Bytes read when sniffing a file without a known extension
SNIFF_BYTES = 4096
SNIFF_LINES = 10

# Column added to every TOML-derived table holding the top-level key
TOML_KEY_COLUMN = '_key'

# Process exit codes
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NO_MATCH = 2
EXIT_PARSE_ERROR = 3
EXIT_QUERY_ERROR = 4
EXIT_FATAL_IO = 5
EXIT_INTERRUPTED = 130

# Meta-command prefixes
COMMAND_PREFIXES = ('\\', '/')
