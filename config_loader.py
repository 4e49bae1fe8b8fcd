"""
Módulo para carregar configurações do config.txt

Carrega as variáveis de configuração de forma centralizada para todos os módulos.
"""

from pathlib import Path
from typing import Any, Dict, Optional

# Cache das configurações carregadas
_config_cache: Optional[Dict[str, Any]] = None

def _get_config_path() -> Path:
    """Retorna o caminho para o config.txt (mesmo diretório deste módulo)."""
    return Path(__file__).parent / "config.txt"

def _parse_value(value_str: str) -> Any:
    """Converte string para o tipo Python apropriado."""
    value_str = value_str.strip()

    if value_str.lower() == 'none':
        return None

    if value_str.lower() == 'true':
        return True
    if value_str.lower() == 'false':
        return False

    try:
        return int(value_str)
    except ValueError:
        pass

    try:
        return float(value_str)
    except ValueError:
        pass

    # String (fallback)
    return value_str

def load_config(force_reload: bool = False) -> Dict[str, Any]:
    """
    Carrega as configurações do config.txt.

    Args:
        force_reload: Se True, recarrega do arquivo mesmo se já estiver em cache

    Returns:
        Dict com as configurações (chave: valor)
    """
    global _config_cache

    if _config_cache is not None and not force_reload:
        return _config_cache

    config: Dict[str, Any] = {}
    config_path = _get_config_path()

    if not config_path.exists():
        print(f"[Config] config.txt não encontrado em {config_path}. Usando valores padrão.")
        _config_cache = _get_defaults()
        return _config_cache

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()

                # Ignorar linhas vazias e comentários
                if not line or line.startswith('#'):
                    continue

                # Ignorar linhas decorativas (═, ╔, ╚, ║, etc.)
                if line[0] in '═╔╚╗╝║├┤┬┴┼─│':
                    continue

                # Parsear CHAVE = VALOR
                if '=' in line:
                    key, value = line.split('=', 1)
                    key = key.strip()
                    value = value.strip()

                    # Remover comentário inline (se houver)
                    if '#' in value:
                        value = value.split('#')[0].strip()

                    config[key] = _parse_value(value)

    except (OSError, UnicodeDecodeError) as e:
        print(f"[Config] Erro ao ler config.txt: {e}. Usando valores padrão.")
        _config_cache = _get_defaults()
        return _config_cache

    # Mesclar com defaults para valores não especificados
    for key, default_value in _get_defaults().items():
        if key not in config:
            config[key] = default_value

    _config_cache = config
    return config

def _get_defaults() -> Dict[str, Any]:
    """Retorna valores padrão caso o config.txt não exista ou esteja incompleto."""
    return {
        # Decoder
        'OUTPUT_GROWTH_FACTOR': 2,
        'MAX_DECODED_SIZE': None,

        # CLI
        'MAX_WORKER_THREADS': 2,
        'VERIFY_WITH_LZ4': False,
        'SIZE_PREFIXED': False,
        'VERBOSE': False,
    }

def get(key: str, default: Any = None) -> Any:
    """
    Obtém um valor de configuração pelo nome.

    Args:
        key: Nome da configuração
        default: Valor padrão se não encontrado

    Returns:
        Valor da configuração ou default
    """
    config = load_config()
    return config.get(key, default)

# Aliases convenientes para uso direto
def get_output_growth_factor() -> float:
    """Retorna OUTPUT_GROWTH_FACTOR (valores <= 1 voltam para 2)."""
    factor = get('OUTPUT_GROWTH_FACTOR', 2)
    if not isinstance(factor, (int, float)) or isinstance(factor, bool) or factor <= 1:
        return 2.0
    return float(factor)

def get_max_decoded_size() -> Optional[int]:
    """Retorna MAX_DECODED_SIZE (None = sem limite; valor inválido também)."""
    value = get('MAX_DECODED_SIZE')
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        return None
    return value

def get_max_worker_threads() -> int:
    """Retorna MAX_WORKER_THREADS."""
    return max(1, int(get('MAX_WORKER_THREADS', 2)))

def is_verify_enabled() -> bool:
    """Retorna True se cada bloco deve ser conferido com lz4.block."""
    return bool(get('VERIFY_WITH_LZ4', False))

def is_size_prefixed() -> bool:
    """Retorna SIZE_PREFIXED."""
    return bool(get('SIZE_PREFIXED', False))

def is_verbose() -> bool:
    """Retorna VERBOSE."""
    return bool(get('VERBOSE', False))
