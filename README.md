# lnxvfs

The storage layer of a page-based virtual filesystem. It contains the on-disk
encodings for page files and a directory that manages the files themselves.

## Contents

- `lnxvfs.layout.ids`: the identifier types `PageGroupId` (64-bit), `PageFileId`
  and `PageId` (32-bit). `PageId.TERMINATOR` marks the end of a page chain, and
  `PageId.is_terminator()` tests for it.
- `lnxvfs.layout.encrypt`: XChaCha20-Poly1305 encryption in place. `Cipher` wraps a
  32-byte key, and `Cipher.generate()` makes a random one.
  `encrypt_in_place` writes the 16-byte tag and the 24-byte nonce into a 40-byte
  context. `decrypt_in_place` reads them back and raises `DecryptError` on failure.
- `lnxvfs.layout.file_metadata`: the 4 KB (`HEADER_SIZE`) page file header. It
  holds magic bytes, an `Encryption` hint, a context and a length-prefixed JSON
  payload, which is encrypted when a cipher is given
  (`encode_metadata`, `decode_metadata`). Failures are raised as subclasses of
  `DecodeError` and `EncodeError`.
- `lnxvfs.layout.integrity`: check bytes. `write_check_bytes` writes an
  HMAC-SHA256 digest when a key is given and a CRC32 checksum otherwise. The
  matching checks are `verify`, `verify_hmac_buffer` and `verify_crc32_buffer`.
- `lnxvfs.layout.page_metadata`: `PageMetadata` records, each 64 bytes long
  (`to_bytes`, `from_bytes`, `empty`, `is_empty`). A list of them is a
  `PageMetadataUpdates`. It is encoded as `[context, crc32, LZ4 frame]` and
  optionally encrypted (`encode_page_metadata_updates`,
  `decode_page_metadata_updates`).
- `lnxvfs.layout.log`: 512-byte write-ahead log blocks. A `LogBlock` holds up to
  448 bytes of `EntryPair`s. Each pair is a `LogEntry` with a `LogOp`, plus
  optional `PageMetadata`. `push_entry` raises `BlockFullError` when the block has
  no room left. A block is stored with a CRC32 checksum, or encrypted when a
  cipher is given (`encode_log_block`, `decode_log_block`).
- `lnxvfs.file`: file handles with reference counts (`RingFile`) and
  asynchronous access through them:
  - `ROFile.read_buffer`
  - `RWFile.write_buffer` and `RWFile.fdatasync`. After a failed sync, all
    further writes are refused with `EROFS`.
  - `DirFile.sync`

  Handles are closed with `close()` or with a `with` block.
- `lnxvfs.directory`: `SystemDirectory` keeps track of files in three groups,
  `FileGroup.PAGES`, `FileGroup.METADATA` and `FileGroup.WAL`. Each group has its
  own sub-folder. Files are named `<10-digit id>-<id>.<extension>`, and new IDs
  count up from 1000. On open, existing files are reopened and empty ones are
  deleted. `list_files` lists a group folder and raises `InvalidFilenameError`
  for malformed names.
- `lnxvfs.utils`: `align_up`, `align_down`, `SingleOrShared`, and
  `create_file`, which syncs the parent directory after creating a file.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example: encrypted metadata header

```python
from lnxvfs.layout.encrypt import Cipher
from lnxvfs.layout.file_metadata import HEADER_SIZE, encode_metadata, decode_metadata

cipher = Cipher.generate()
buffer = bytearray(HEADER_SIZE)
encode_metadata(cipher, b"", {"id": 1}, buffer)
assert decode_metadata(cipher, b"", buffer) == {"id": 1}
```

## Example: a log block

```python
from lnxvfs.layout.ids import PageFileId, PageId
from lnxvfs.layout.log import (
    LOG_BLOCK_SIZE, LogBlock, LogEntry, LogOp, decode_log_block, encode_log_block,
)

block = LogBlock()
block.push_entry(LogEntry(
    transaction_id=3, transaction_n_entries=1, sequence_id=1,
    page_file_id=PageFileId(6), page_id=PageId(5), op=LogOp.WRITE,
))
buffer = bytearray(LOG_BLOCK_SIZE)
encode_log_block(None, b"", block, buffer)
assert decode_log_block(None, b"", buffer) == block
```

## Example: directory

```python
import asyncio
from lnxvfs.directory import FileGroup, SystemDirectory

async def main():
    directory = await SystemDirectory.open("/tmp/vfs-data")
    file_id = await directory.create_new_file(FileGroup.PAGES)
    with await directory.get_rw_file(FileGroup.PAGES, file_id) as file:
        await file.write_buffer(b"hello", 0)
        await file.fdatasync()
    print(file_id, await directory.list_dir(FileGroup.PAGES))
    await directory.remove_file(FileGroup.PAGES, file_id)

asyncio.run(main())
```

`SystemDirectory.remove_file` does nothing when the file does not exist. It
raises `OSError` with `EBUSY` when a handle to the file is still open. Looking up
a file that does not exist raises `FileNotFoundError`.

## What it does not do

This package gives the building blocks only. It has no filesystem front end
that opens readers and writers by file ID, has no transactions that commit or
roll back, and keeps no page cache. Nothing joins the headers, page metadata
tables and log blocks into a page file. File I/O runs as plain blocking calls
on worker threads, not through a submission ring.