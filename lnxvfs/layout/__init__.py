"""On-disk layouts: identifiers, file headers, page metadata, log blocks, integrity and encryption."""