import tempfile, yaml, os
from typing import Union, Dict, Any
from pathlib import Path
from goalshare.recovery import StoreUnavailableError, CorruptionError
from goalshare.logs import get_logger

log = get_logger("store.io")

def _cleanup(temp_path):
    if temp_path is not None and os.path.exists(temp_path):
        try:
            os.unlink(temp_path)
            log.debug(f"Cleaned up temporary file: {temp_path}")
        except OSError as cleanup_error:
            log.warning(f"Could not clean up temp file {temp_path}: {cleanup_error}")

def _create_dirs(file_path : Path):
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
    except (OSError, PermissionError) as e:
        error_msg = f"Cannot create directory {file_path.parent}: {e}"
        log.error(error_msg)
        raise StoreUnavailableError(error_msg) from e

def atomic_write(file_path : Union[Path, str], data : Dict[str, Any], create_dirs : bool = True):
    """
    Serialize and save data to a YAML file using atomic updates.
    """
    file_path = Path(file_path)
    temp_path = None

    try:
        if create_dirs:
            _create_dirs(file_path)

        # Temporary file in the same directory as target for atomicity
        with tempfile.NamedTemporaryFile(mode='w', encoding='utf-8', dir=file_path.parent, prefix=f".{file_path.name}.", suffix='.tmp', delete=False) as temp_file:
            temp_path = temp_file.name
            yaml.safe_dump(data, temp_file, default_flow_style=False, sort_keys=False, indent=2, allow_unicode=True)
            temp_file.flush()
            os.fsync(temp_file.fileno())

        # Atomic replace - this either completely succeeds or completely fails
        os.replace(temp_path, file_path)
        log.debug(f"Successfully saved YAML file: {file_path}")

    except (yaml.YAMLError, TypeError) as e:
        _cleanup(temp_path)
        # Data cannot be serialized
        error_msg = (f"Data serialization failed for {file_path}. "
                    f"In-memory data may contain non-serializable types: {e}")
        log.critical(error_msg)
        raise CorruptionError(error_msg) from e

    except (IOError, OSError) as e:
        _cleanup(temp_path)
        error_msg = f"I/O error saving YAML file {file_path}: {e}"
        log.error(error_msg)
        raise StoreUnavailableError(error_msg) from e

def load_yaml_file(file_path : Union[Path, str]) -> Dict:
    """
    Load and parse a YAML mapping.

    Args:
        file_path: Path to the YAML file

    Returns:
        Parsed data as dict; empty when the file does not exist yet
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return {}

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

    except yaml.YAMLError as e:
        # YAML syntax errors are typically fatal (corrupted file)
        raise CorruptionError(f"YAML syntax error in {file_path}: {e}") from e
    except (IOError, OSError) as e:
        raise StoreUnavailableError(f"Failed to read file {file_path}: {e}") from e

    # Basic sanity check for data corruption
    if not isinstance(data, dict):
        raise CorruptionError(f"File {file_path} contains invalid data structure")

    return data
