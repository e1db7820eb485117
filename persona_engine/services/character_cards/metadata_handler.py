"""
PNG Metadata Handler
===================

Reads and writes tEXt/zTXt chunks in PNG images for character card metadata.

Only ancillary text chunks are touched. Every other chunk, including the
pixel stream, is copied byte-for-byte.
"""

import struct
import zlib
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

TEXT_CHUNK_TYPES = (b"tEXt", b"zTXt")


@dataclass
class PngChunk:
    """One raw chunk as it appears on the wire."""
    chunk_type: bytes
    data: bytes
    raw: bytes  # length + type + data + crc, exactly as read


@dataclass
class ImageInfo:
    """Header-level facts about an image (no pixel decode)."""
    format: str
    width: int
    height: int


class PNGMetadataHandler:
    """Handle PNG tEXt/zTXt chunk operations for character card metadata."""

    @staticmethod
    def is_png(data: bytes) -> bool:
        """Check the 8-byte PNG signature."""
        return bool(data) and data[:8] == PNG_SIGNATURE

    @staticmethod
    def crc32(data: bytes) -> int:
        """
        CRC-32 as used by PNG chunks.

        Reflected polynomial 0xEDB88320, seed 0xFFFFFFFF, final XOR
        0xFFFFFFFF, which is what zlib implements.
        """
        return zlib.crc32(data) & 0xFFFFFFFF

    @staticmethod
    def iter_chunks(png_data: bytes) -> Iterator[PngChunk]:
        """
        Iterate over the chunks following the signature.

        Stops after IEND, at end of data, or at a truncated trailing chunk.
        The CRC is not validated.
        """
        offset = len(PNG_SIGNATURE)
        total = len(png_data)
        while offset + 8 <= total:
            (length,) = struct.unpack(">I", png_data[offset:offset + 4])
            chunk_type = png_data[offset + 4:offset + 8]
            end = offset + 12 + length
            if end > total:
                logger.debug(f"Truncated {chunk_type!r} chunk at offset {offset}, stopping")
                return
            data = png_data[offset + 8:offset + 8 + length]
            yield PngChunk(chunk_type=chunk_type, data=data, raw=png_data[offset:end])
            offset = end
            if chunk_type == b"IEND":
                return

    @staticmethod
    def _split_keyword(data: bytes) -> Tuple[str, bytes]:
        """Split a text chunk payload at the first NUL byte."""
        null_index = data.find(b"\x00")
        if null_index < 0:
            return "", b""
        return data[:null_index].decode("latin-1"), data[null_index + 1:]

    @classmethod
    def _parse_text_chunk(cls, data: bytes) -> Tuple[str, str]:
        keyword, rest = cls._split_keyword(data)
        return keyword, rest.decode("latin-1")

    @classmethod
    def _parse_compressed_text_chunk(cls, data: bytes) -> Tuple[str, str]:
        keyword, rest = cls._split_keyword(data)
        if not keyword or len(rest) < 1:
            return keyword, ""

        # Compression method 0 is the only one PNG defines
        if rest[0] != 0:
            return keyword, ""

        # Skip the 2-byte zlib header and inflate the raw deflate stream
        stream = rest[3:]
        try:
            inflater = zlib.decompressobj(-zlib.MAX_WBITS)
            text = inflater.decompress(stream) + inflater.flush()
            return keyword, text.decode("utf-8")
        except (zlib.error, UnicodeDecodeError) as e:
            logger.warning(f"Failed to inflate zTXt chunk '{keyword}': {e}")
            return keyword, ""

    @classmethod
    def read_text_chunks(cls, png_data: bytes) -> Dict[str, str]:
        """
        Extract every tEXt/zTXt chunk from PNG data.

        Args:
            png_data: PNG file data as bytes

        Returns:
            Mapping of keyword to text. The first occurrence of a keyword
            wins (compared case-insensitively). Non-PNG input yields an
            empty mapping.
        """
        result: Dict[str, str] = {}
        if not cls.is_png(png_data):
            logger.debug("Data does not start with a PNG signature")
            return result

        seen = set()
        for chunk in cls.iter_chunks(png_data):
            if chunk.chunk_type == b"tEXt":
                keyword, text = cls._parse_text_chunk(chunk.data)
            elif chunk.chunk_type == b"zTXt":
                keyword, text = cls._parse_compressed_text_chunk(chunk.data)
            else:
                continue

            if keyword and keyword.lower() not in seen:
                seen.add(keyword.lower())
                result[keyword] = text

        return result

    @staticmethod
    def get_text_chunk(chunks: Dict[str, str], keyword: str) -> Optional[str]:
        """Look up a chunk keyword case-insensitively."""
        for key, value in chunks.items():
            if key.lower() == keyword.lower():
                return value
        return None

    @classmethod
    def _frame_chunk(cls, chunk_type: bytes, data: bytes) -> bytes:
        """Frame chunk data with its length and CRC."""
        crc = cls.crc32(chunk_type + data)
        return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)

    @classmethod
    def build_text_chunk(cls, keyword: str, text: str, compress: bool = False) -> bytes:
        """
        Build a complete tEXt or zTXt chunk.

        zTXt streams are full zlib streams (header 0x78 0x9C, deflate data,
        Adler-32 trailer) over the UTF-8 text. tEXt holds Latin-1 only.

        Raises:
            ValueError: If the keyword, or uncompressed text, is not Latin-1
        """
        try:
            keyword_bytes = keyword.encode("latin-1")
        except UnicodeEncodeError:
            raise ValueError(f"PNG text keyword '{keyword}' is not Latin-1")
        if compress:
            payload = keyword_bytes + b"\x00" + b"\x00" + zlib.compress(text.encode("utf-8"), 6)
            return cls._frame_chunk(b"zTXt", payload)
        try:
            text_bytes = text.encode("latin-1")
        except UnicodeEncodeError:
            raise ValueError(f"Text for '{keyword}' is not Latin-1; write it compressed or base64-encode it")
        payload = keyword_bytes + b"\x00" + text_bytes
        return cls._frame_chunk(b"tEXt", payload)

    @classmethod
    def write_text_chunks(
        cls,
        png_data: bytes,
        text_chunks: Dict[str, str],
        compress: bool = False,
        drop_keywords: Iterable[str] = ()
    ) -> bytes:
        """
        Embed text chunks into PNG data.

        Args:
            png_data: Original PNG file data as bytes
            text_chunks: Keyword to text mapping to write
            compress: Write zTXt instead of tEXt
            drop_keywords: Extra keywords whose existing chunks are removed

        Returns:
            PNG data that differs from the input only by metadata chunks

        Raises:
            ValueError: If png_data is not a PNG, or a keyword or
                uncompressed text cannot be encoded as Latin-1
        """
        if not cls.is_png(png_data):
            raise ValueError("Data is not a PNG image")

        replaced = {k.lower() for k in text_chunks}
        replaced.update(k.lower() for k in drop_keywords)
        new_chunks = b"".join(
            cls.build_text_chunk(keyword, text, compress)
            for keyword, text in text_chunks.items()
        )

        output = BytesIO()
        output.write(png_data[:8])
        inserted = False
        consumed = len(PNG_SIGNATURE)

        for chunk in cls.iter_chunks(png_data):
            consumed += len(chunk.raw)

            if not inserted and chunk.chunk_type in (b"IDAT", b"IEND"):
                output.write(new_chunks)
                inserted = True

            if chunk.chunk_type in TEXT_CHUNK_TYPES:
                keyword, _ = cls._split_keyword(chunk.data)
                if keyword and keyword.lower() in replaced:
                    logger.debug(f"Replacing existing {chunk.chunk_type.decode('ascii')} chunk '{keyword}'")
                    continue

            output.write(chunk.raw)

        if not inserted:
            output.write(new_chunks)

        # Anything after IEND or a truncated tail is carried over untouched
        output.write(png_data[consumed:])
        return output.getvalue()

    @classmethod
    def read_text_chunks_from_file(cls, png_path: Union[str, Path]) -> Dict[str, str]:
        """Read text chunks straight from a file."""
        return cls.read_text_chunks(cls.extract_image(png_path))

    @classmethod
    def write_text_chunks_to_file(
        cls,
        input_path: Union[str, Path],
        output_path: Union[str, Path],
        text_chunks: Dict[str, str],
        compress: bool = False
    ) -> bool:
        """
        Copy a PNG file, embedding text chunks on the way.

        Returns:
            True on success, False on any I/O or format failure
        """
        try:
            png_data = cls.extract_image(input_path)
            cls.save_image(cls.write_text_chunks(png_data, text_chunks, compress), output_path)
            return True
        except (OSError, ValueError) as e:
            logger.error(f"Failed to write PNG metadata to '{output_path}': {e}")
            return False

    @staticmethod
    def describe_image(data: bytes) -> Optional[ImageInfo]:
        """
        Identify an image from its header.

        Pillow opens images lazily, so only the header is parsed here.
        """
        if not data:
            return None
        try:
            with Image.open(BytesIO(data)) as image:
                return ImageInfo(format=image.format or "", width=image.width, height=image.height)
        except (UnidentifiedImageError, OSError) as e:
            logger.debug(f"Could not identify image data: {e}")
            return None

    @staticmethod
    def extract_image(png_path: Union[str, Path]) -> bytes:
        """
        Load image data from file.

        Args:
            png_path: Path to image file

        Returns:
            File data as bytes
        """
        try:
            with open(png_path, 'rb') as f:
                return f.read()
        except Exception as e:
            logger.error(f"Error reading image file '{png_path}': {e}")
            raise

    @staticmethod
    def save_image(png_data: bytes, output_path: Union[str, Path]) -> None:
        """
        Save image data to file.

        Args:
            png_data: File data as bytes
            output_path: Path to save file
        """
        try:
            with open(output_path, 'wb') as f:
                f.write(png_data)
        except Exception as e:
            logger.error(f"Error saving image file to '{output_path}': {e}")
            raise
