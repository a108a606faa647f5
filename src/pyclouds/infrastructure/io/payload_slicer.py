"""Split payloads into parts for multipart uploads."""

from collections.abc import Iterator

from pyclouds.domain.base.payload import ContentMetadata, Payload


class PayloadSlicer:
    def slice(self, payload: Payload, offset: int, length: int) -> Payload:
        """Return ``length`` bytes of a repeatable payload starting at ``offset``."""
        if offset < 0:
            raise ValueError("offset cannot be negative")
        if length < 0:
            raise ValueError("length cannot be negative")
        if not payload.is_repeatable():
            raise ValueError("only repeatable payloads can be sliced by offset")

        stream = payload.open_stream()
        try:
            stream.seek(offset)
            data = stream.read(length)
        finally:
            stream.close()
        return Payload(data, self._part_metadata(payload, len(data)))

    def slices(self, payload: Payload, chunk_size: int) -> Iterator[Payload]:
        """
        Yield consecutive parts of at most ``chunk_size`` bytes.

        Single-use payloads are read sequentially, so they can be sliced once.
        An empty payload yields one empty part.
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

        stream = payload.open_stream()
        try:
            emitted = False
            while True:
                data = stream.read(chunk_size)
                if not data:
                    break
                emitted = True
                yield Payload(data, self._part_metadata(payload, len(data)))
            if not emitted:
                yield Payload(b"", self._part_metadata(payload, 0))
        finally:
            if payload.is_repeatable():
                stream.close()
            else:
                payload.release()

    @staticmethod
    def _part_metadata(payload: Payload, length: int) -> ContentMetadata:
        return ContentMetadata(
            content_type=payload.metadata.content_type,
            content_encoding=payload.metadata.content_encoding,
            content_length=length,
        )
