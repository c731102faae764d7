"""On-disk storage for folderdb databases.

Layout:
    <location>/<name>/
    ├── .sddata/
    │   └── log.dat                    # Append-only audit log, one line per event
    ├── <entry>/
    │   ├── <entry>.dat                # Data lines, one per line
    │   └── <attachment>               # Verbatim copies of uploaded files
    └── ...

Every folder under the root except .sddata/ is an entry.
"""
