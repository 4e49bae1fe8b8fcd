"""
block_decoder.py
Pure-Python LZ4 Block Decoder (offsets de 2 bytes)

Descomprime UM bloco no formato LZ4 block (sem frame, sem checksum).

Cada sequência do bloco:
    token | [len literal extra] | literais | offset (2 bytes LE) | [len match extra]

Suporta:
- Escape de tamanho (bytes 255 encadeados) para literais e matches
- Matches sobrepostos (RLE com período 1/2/3 via fix-up de 4 bytes)
- Reuso de buffer de destino (hint de capacidade)

Uso:
    from block_decoder import decode, decompress_block

    output, err = decode(None, compressed)
    data = decompress_block(compressed, uncompressed_size=4096)
"""

from __future__ import annotations
import struct
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import config_loader

# Constantes do formato LZ4 block
ML_BITS = 4
ML_MASK = (1 << ML_BITS) - 1
RUN_BITS = 8 - ML_BITS
RUN_MASK = (1 << RUN_BITS) - 1
MIN_MATCH = 4
SIZE_PREFIX_LEN = 4

# Correção do ref após o fix-up de 4 bytes, indexado pela distância (< 4)
DECR = (0, 3, 2, 3)

# Capacidade mínima ao crescer o buffer de saída
MIN_GROWTH = 64

# Cada byte de escape (255) rende no máximo 255 bytes de saída
MAX_EXPANSION = 255

# Reason codes
TRUNCATED_LITERAL_LENGTH = "truncated-literal-length"
TRUNCATED_LITERALS = "truncated-literals"
TRUNCATED_OFFSET = "truncated-offset"
TRUNCATED_MATCH_LENGTH = "truncated-match-length"
ZERO_OFFSET = "zero-offset"
OFFSET_OUT_OF_RANGE = "offset-out-of-range"
OUTPUT_LIMIT = "output-limit"
SIZE_MISMATCH = "size-mismatch"
TRUNCATED_PREFIX = "truncated-prefix"


class CorruptInputError(ValueError):
    """
    Erro único para qualquer bloco malformado.

    O `reason` é apenas informativo: todos os casos são "corrupt input".
    """

    def __init__(self, reason: Optional[str] = None, position: Optional[int] = None):
        self.reason = reason
        self.position = position
        message = "corrupt input"
        if reason:
            message += f": {reason}"
        if position is not None:
            message += f" at ip={position}"
        super().__init__(message)


class _EndOfStream:
    """Marcador de fim limpo do bloco."""

    _instance: Optional["_EndOfStream"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END_OF_STREAM"

    def __bool__(self) -> bool:
        return False


END_OF_STREAM = _EndOfStream()


@dataclass(frozen=True)
class Token:
    """Campos do byte de controle (literal já estendido pelo escape)."""
    literal_length: int
    match_field: int


# ---------------------------------------------------------------------------
# Byte Cursor
# ---------------------------------------------------------------------------

class ByteCursor:
    """Leitura sequencial com verificação de limites sobre o bloco comprimido."""

    def __init__(self, src: bytes):
        self.src = memoryview(src).cast("B")
        self.ip = 0
        self.end = len(self.src)

    @property
    def remaining(self) -> int:
        return self.end - self.ip

    @property
    def exhausted(self) -> bool:
        return self.ip >= self.end

    def read_byte(self) -> Optional[int]:
        """Retorna o próximo byte, ou None no fim do input."""
        if self.ip >= self.end:
            return None
        b = self.src[self.ip]
        self.ip += 1
        return b

    def read_uint16_le(self) -> Optional[int]:
        """
        Lê um uint16 little-endian.

        Zero bytes restantes -> None (fim do input).
        Apenas um byte restante -> CorruptInputError.
        """
        if self.ip >= self.end:
            return None
        if self.ip + 2 > self.end:
            raise CorruptInputError(TRUNCATED_OFFSET, self.ip)
        value = self.src[self.ip] | (self.src[self.ip + 1] << 8)
        self.ip += 2
        return value

    def read_bytes(self, length: int) -> memoryview:
        if self.ip + length > self.end:
            raise CorruptInputError(TRUNCATED_LITERALS, self.ip)
        chunk = self.src[self.ip:self.ip + length]
        self.ip += length
        return chunk


def read_extra_length(cursor: ByteCursor, reason: str = TRUNCATED_LITERAL_LENGTH) -> int:
    """
    Decodifica a continuação de escape: cada 255 soma 255 e continua,
    o primeiro byte < 255 soma seu valor e encerra.

    O bloco não pode terminar no meio da continuação.
    """
    length = 0
    while True:
        b = cursor.read_byte()
        if b is None:
            raise CorruptInputError(reason, cursor.ip)
        length += b
        if b != 255:
            return length


# ---------------------------------------------------------------------------
# Output Builder + Copy Engine
# ---------------------------------------------------------------------------

class OutputBuilder:
    """
    Buffer de saída append-only.

    `buf` pode ter folga além de `pos`; somente buf[:pos] é saída válida.
    """

    def __init__(self, capacity: int = 0, backing: Optional[bytearray] = None,
                 max_size: Optional[int] = None, growth_factor: Optional[float] = None):
        if backing is not None:
            self.buf = backing
            if len(self.buf) < capacity:
                self.buf.extend(bytes(capacity - len(self.buf)))
        else:
            self.buf = bytearray(capacity)
        self.pos = 0
        self.max_size = max_size
        if growth_factor is None:
            growth_factor = config_loader.get_output_growth_factor()
        self.growth_factor = growth_factor

    def __len__(self) -> int:
        return self.pos

    def _reserve(self, extra: int):
        needed = self.pos + extra
        if self.max_size is not None and needed > self.max_size:
            raise CorruptInputError(OUTPUT_LIMIT)
        capacity = len(self.buf)
        if needed <= capacity:
            return
        new_capacity = max(int(capacity * self.growth_factor), needed, MIN_GROWTH)
        if self.max_size is not None:
            new_capacity = min(new_capacity, self.max_size)
        self.buf.extend(bytes(new_capacity - capacity))

    def append(self, data) -> None:
        length = len(data)
        self._reserve(length)
        self.buf[self.pos:self.pos + length] = data
        self.pos += length

    def copy_match(self, ref: int, length: int) -> int:
        """
        Copia `length` bytes a partir de `ref` para o fim da saída.

        Faixas disjuntas -> cópia em bloco (slice).
        Faixas sobrepostas -> byte a byte em ordem crescente: os bytes
        recém-escritos viram fonte dos seguintes (expansão periódica).

        Retorna o novo ref.
        """
        self._reserve(length)
        buf = self.buf
        op = self.pos
        if ref + length <= op:
            buf[op:op + length] = buf[ref:ref + length]
        else:
            for i in range(length):
                buf[op + i] = buf[ref + i]
        self.pos = op + length
        return ref + length

    def finish(self) -> bytearray:
        """Descarta a folga e devolve o buffer com exatamente `pos` bytes."""
        del self.buf[self.pos:]
        return self.buf


def copy_back_reference(out: OutputBuilder, offset: int, match_field: int, ip: Optional[int] = None) -> None:
    """
    Resolve um match: `offset` bytes atrás da posição atual.

    Distância >= 4: copia match_field + MIN_MATCH bytes.
    Distância < 4: fix-up de exatamente 4 bytes replicando o padrão curto,
    ref avança 4 - DECR[dist], depois copia os match_field bytes restantes.
    """
    if offset == 0:
        raise CorruptInputError(ZERO_OFFSET, ip)
    if offset > out.pos:
        raise CorruptInputError(OFFSET_OUT_OF_RANGE, ip)

    ref = out.pos - offset
    literal = out.pos - ref
    length = match_field
    if literal < MIN_MATCH:
        ref = out.copy_match(ref, MIN_MATCH) - DECR[literal]
    else:
        length += MIN_MATCH

    out.copy_match(ref, length)


# ---------------------------------------------------------------------------
# Sequence parsing + loop
# ---------------------------------------------------------------------------

def read_token(cursor: ByteCursor) -> Union[Token, _EndOfStream]:
    """Lê o byte de controle; fim do input aqui é o término limpo do bloco."""
    code = cursor.read_byte()
    if code is None:
        return END_OF_STREAM

    literal_length = code >> ML_BITS
    if literal_length == RUN_MASK:
        literal_length += read_extra_length(cursor, TRUNCATED_LITERAL_LENGTH)

    return Token(literal_length, code & ML_MASK)


def read_offset(cursor: ByteCursor) -> Union[int, _EndOfStream]:
    """Offset do match, ou END_OF_STREAM se o bloco acabou após os literais."""
    offset = cursor.read_uint16_le()
    if offset is None:
        return END_OF_STREAM
    return offset


def _decode_into(src: bytes, out: OutputBuilder) -> OutputBuilder:
    cursor = ByteCursor(src)

    while True:
        token = read_token(cursor)
        if token is END_OF_STREAM:
            return out

        # Literais
        if token.literal_length:
            out.append(cursor.read_bytes(token.literal_length))

        offset_ip = cursor.ip
        offset = read_offset(cursor)
        if offset is END_OF_STREAM:
            return out

        match_field = token.match_field
        if match_field == ML_MASK:
            match_field += read_extra_length(cursor, TRUNCATED_MATCH_LENGTH)

        copy_back_reference(out, offset, match_field, offset_ip)


def _check_source(src) -> None:
    if isinstance(src, (str, int)) or src is None:
        raise TypeError(f"src must be a bytes-like object, not {type(src).__name__}")


def _make_builder(dest_hint, src, max_output_size: Optional[int]) -> OutputBuilder:
    if dest_hint is None:
        capacity = len(src)  # guess
        backing = None
    elif isinstance(dest_hint, bytearray):
        capacity = len(dest_hint)
        backing = dest_hint
    elif isinstance(dest_hint, int):
        capacity = dest_hint
        backing = None
    else:
        capacity = len(dest_hint)
        backing = None

    if capacity < 0:
        raise ValueError(f"dest_hint must not be negative: {capacity}")
    if max_output_size is not None:
        if max_output_size < 0:
            raise ValueError(f"max_output_size must not be negative: {max_output_size}")
        capacity = min(capacity, max_output_size)
    # Hint acima do que o bloco consegue produzir não é alocado de uma vez
    if backing is None:
        capacity = min(capacity, len(src) * MAX_EXPANSION + MIN_GROWTH)
    return OutputBuilder(capacity, backing=backing, max_size=max_output_size)


def decode(dest_hint, src) -> Tuple[Optional[bytes], Optional[CorruptInputError]]:
    """
    Decodifica um bloco LZ4.

    Args:
        dest_hint: None, um tamanho (int), qualquer objeto com len() usado
            como capacidade inicial, ou um bytearray reutilizado como buffer
            de saída (fica com exatamente os bytes decodificados; vazio
            se o bloco for malformado).
        src: bloco comprimido completo

    Returns:
        (saída, None) em sucesso; (None, CorruptInputError) se malformado
    """
    _check_source(src)
    out = _make_builder(dest_hint, src, config_loader.get_max_decoded_size())
    try:
        return bytes(_decode_into(src, out).finish()), None
    except CorruptInputError as e:
        # Não deixar saída parcial no buffer do chamador
        del out.buf[:]
        return None, e


def decompress_block(src, uncompressed_size: Optional[int] = None,
                     max_output_size: Optional[int] = None) -> bytes:
    """
    Versão que levanta exceção.

    Args:
        src: bloco comprimido
        uncompressed_size: tamanho esperado (também usado como capacidade)
        max_output_size: limite de bytes decodificados (None = config.txt)

    Raises:
        CorruptInputError: bloco malformado ou tamanho divergente
    """
    _check_source(src)
    if uncompressed_size is not None and uncompressed_size < 0:
        raise ValueError(f"uncompressed_size must not be negative: {uncompressed_size}")
    if max_output_size is None:
        max_output_size = config_loader.get_max_decoded_size()
    # Nunca decodificar além do tamanho esperado
    if uncompressed_size is not None:
        if max_output_size is None or uncompressed_size < max_output_size:
            max_output_size = uncompressed_size

    out = _decode_into(src, _make_builder(uncompressed_size, src, max_output_size))

    if uncompressed_size is not None and out.pos != uncompressed_size:
        raise CorruptInputError(SIZE_MISMATCH)

    return bytes(out.finish())


def split_size_prefix(data) -> Tuple[int, memoryview]:
    """
    Separa o prefixo de 4 bytes (uint32 LE) gravado por
    lz4.block.compress(store_size=True).
    """
    _check_source(data)
    if len(data) < SIZE_PREFIX_LEN:
        raise CorruptInputError(TRUNCATED_PREFIX, len(data))
    (size,) = struct.unpack_from("<I", data, 0)
    return size, memoryview(data)[SIZE_PREFIX_LEN:]
