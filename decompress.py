"""
Decompressor de blocos LZ4 (formato block, sem frame).

Cada arquivo de entrada é UM bloco LZ4 bruto. Opcionalmente o bloco
começa com o prefixo de 4 bytes gravado por lz4.block.compress(store_size=True).

Uso:
    # Um bloco para arquivo
    python decompress.py bloco.lz4 -o saida.bin

    # Bloco com prefixo de tamanho, conferindo com python-lz4
    python decompress.py bloco.lz4 --size-prefixed --verify -o saida.bin

    # Vários blocos para um diretório (em paralelo)
    python decompress.py a.lz4 b.lz4 c.lz4 -o restaurado/ --workers 4

    # Para stdout
    python decompress.py bloco.lz4 -o - > saida.bin
"""

from __future__ import annotations
import argparse
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import lz4.block

import config_loader
from block_decoder import SIZE_MISMATCH, CorruptInputError, decompress_block, split_size_prefix


@dataclass
class BlockResult:
    """Resultado da decodificação de um arquivo de bloco."""
    path: Path
    compressed_size: int
    output: Optional[bytes] = None
    error: Optional[str] = None
    verified: Optional[bool] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and self.verified is not False


def verify_with_lz4(src: bytes, decoded: bytes, size_prefixed: bool = False) -> bool:
    """
    Confere a saída com a implementação de referência (lz4.block).

    Returns:
        True se python-lz4 produz exatamente os mesmos bytes
    """
    if not decoded:
        # lz4.block não aceita uncompressed_size=0
        payload = src[4:] if size_prefixed else src
        return payload in (b"", b"\x00")

    try:
        if size_prefixed:
            expected = lz4.block.decompress(src)
        else:
            expected = lz4.block.decompress(src, uncompressed_size=len(decoded))
    except lz4.block.LZ4BlockError as e:
        print(f"[Verify] lz4.block rejeitou o bloco: {e}", file=sys.stderr)
        return False

    return expected == decoded


def decode_file(path: Path, uncompressed_size: Optional[int] = None, size_prefixed: bool = False,
                max_output_size: Optional[int] = None, verify: bool = False) -> BlockResult:
    """
    Lê e decodifica um arquivo contendo um bloco LZ4.

    Erros de leitura e blocos corrompidos são registrados no BlockResult,
    não propagados.
    """
    start = time.time()
    try:
        src = path.read_bytes()
    except OSError as e:
        return BlockResult(path=path, compressed_size=0, error=f"falha ao ler: {e}")

    result = BlockResult(path=path, compressed_size=len(src))
    try:
        payload = src
        if size_prefixed:
            prefix_size, payload = split_size_prefix(src)
            if uncompressed_size is None:
                uncompressed_size = prefix_size
            elif uncompressed_size != prefix_size:
                raise CorruptInputError(SIZE_MISMATCH)

        result.output = decompress_block(payload, uncompressed_size=uncompressed_size,
                                         max_output_size=max_output_size)
    except CorruptInputError as e:
        result.error = str(e)
        result.elapsed = time.time() - start
        return result

    if verify:
        result.verified = verify_with_lz4(src, result.output, size_prefixed)

    result.elapsed = time.time() - start
    return result


def decode_files(paths: List[Path], workers: int = 1, **kwargs) -> List[BlockResult]:
    """Decodifica vários blocos independentes; resultados na ordem de entrada."""
    if workers <= 1 or len(paths) <= 1:
        return [decode_file(p, **kwargs) for p in paths]

    results: List[Optional[BlockResult]] = [None] * len(paths)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(decode_file, p, **kwargs): i for i, p in enumerate(paths)}
        for future in as_completed(futures):
            results[futures[future]] = future.result()
    return results


def _output_target(result: BlockResult, output: Optional[str], multiple: bool) -> Optional[Path]:
    """None = stdout."""
    if output == "-":
        return None
    if output is None:
        return result.path.with_name(result.path.name + ".out")
    out = Path(output)
    if multiple or out.is_dir():
        return out / (result.path.name + ".out")
    return out


def write_results(results: List[BlockResult], output: Optional[str]) -> int:
    """Grava as saídas bem-sucedidas. Retorna o total de bytes escritos."""
    multiple = len(results) > 1
    if multiple and output not in (None, "-"):
        Path(output).mkdir(parents=True, exist_ok=True)

    total = 0
    stdout_binary = None
    for result in results:
        if not result.ok:
            continue
        target = _output_target(result, output, multiple)
        if target is None:
            if stdout_binary is None:
                if os.name == 'nt':
                    import msvcrt
                    msvcrt.setmode(sys.stdout.fileno(), os.O_BINARY)
                stdout_binary = sys.stdout.buffer
            stdout_binary.write(result.output)
            stdout_binary.flush()
        else:
            target.write_bytes(result.output)
        total += len(result.output)
    return total


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Decompressor de blocos LZ4 (formato block)",
        epilog="Exemplo: python decompress.py bloco.lz4 -o saida.bin"
    )
    parser.add_argument("inputs", nargs="+", help="Arquivos com um bloco LZ4 cada")
    parser.add_argument("-o", "--output", default=None,
                        help="Arquivo de saída, diretório (várias entradas) ou '-' para stdout")
    parser.add_argument("--size", type=int, default=None, help="Tamanho descomprimido esperado (uma entrada)")
    parser.add_argument("--size-prefixed", action="store_true", default=None,
                        help="Entrada começa com prefixo de 4 bytes (lz4.block store_size)")
    parser.add_argument("--max-size", type=int, default=None, help="Limite de bytes decodificados por bloco")
    parser.add_argument("--verify", action="store_true", default=None, help="Conferir com lz4.block")
    parser.add_argument("--workers", type=int, default=None, help="Threads para múltiplos blocos")
    parser.add_argument("-v", "--verbose", action="store_true", default=None)

    args = parser.parse_args(argv)

    # Flags da linha de comando sobrepõem config.txt
    size_prefixed = args.size_prefixed if args.size_prefixed is not None else config_loader.is_size_prefixed()
    verify = args.verify if args.verify is not None else config_loader.is_verify_enabled()
    workers = args.workers if args.workers is not None else config_loader.get_max_worker_threads()
    verbose = args.verbose if args.verbose is not None else config_loader.is_verbose()
    max_size = args.max_size if args.max_size is not None else config_loader.get_max_decoded_size()

    for flag, value in (("--size", args.size), ("--max-size", args.max_size), ("--workers", args.workers)):
        if value is not None and value < 0:
            print(f"ERRO: {flag} não pode ser negativo: {value}", file=sys.stderr)
            return 1

    paths = [Path(p) for p in args.inputs]
    if args.size is not None and len(paths) > 1:
        print("ERRO: --size só pode ser usado com uma entrada.", file=sys.stderr)
        return 1
    if args.output == "-" and len(paths) > 1:
        print("ERRO: stdout aceita apenas uma entrada.", file=sys.stderr)
        return 1

    missing = [p for p in paths if not p.exists()]
    if missing:
        for p in missing:
            print(f"ERRO: Arquivo não encontrado: {p}", file=sys.stderr)
        return 1

    print(f"[LZ4Block] Decodificando {len(paths)} bloco(s) com {workers} worker(s)...", file=sys.stderr)
    start = time.time()
    results = decode_files(paths, workers=workers, uncompressed_size=args.size,
                           size_prefixed=size_prefixed, max_output_size=max_size, verify=verify)

    failures = 0
    for result in results:
        if result.error is not None:
            failures += 1
            print(f"ERRO em {result.path}: {result.error}", file=sys.stderr)
        elif result.verified is False:
            failures += 1
            print(f"[Verify] {result.path}: saída difere de lz4.block", file=sys.stderr)
        elif verbose:
            status = " (verificado)" if result.verified else ""
            print(f"[LZ4Block] {result.path}: {result.compressed_size} -> {len(result.output)} bytes "
                  f"em {result.elapsed * 1000:.1f}ms{status}", file=sys.stderr)

    try:
        total_written = write_results(results, args.output)
    except OSError as e:
        print(f"ERRO ao escrever saída: {e}", file=sys.stderr)
        return 1

    elapsed = time.time() - start
    ok_count = len(results) - failures
    print(f"[Stats] Blocos OK: {ok_count} | Falhas: {failures} | "
          f"Total escrito: {total_written / (1024 * 1024):.2f} MB em {elapsed:.2f}s", file=sys.stderr)

    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
