from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ENC = "utf-8"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4444

# Server side credential store; the leaf certificate in it is what gets shipped to clients.
CERT_DIR = Path("certs")
CA_CERT_FILE = "hangmango-ca.crt"
CA_KEY_FILE = "hangmango-ca.pem"
LEAF_CERT_FILE = "hangmango.crt"
LEAF_KEY_FILE = "hangmango-signing.pem"
ENCRYPTION_KEY_FILE = "hangmango-private.pem"

RSA_BITS = 2048
SESSION_KEY_SIZE = 32           # bytes, AES-256
MAX_SEALS_PER_KEY = 2 ** 32     # random 96-bit nonces; stop long before a collision is plausible

READ_CHUNK_SIZE = 4096          # bytes per socket recv()
MAX_FRAME_SIZE = 16 * 1024      # one encoded envelope, delimiter excluded
MAX_GUESS_LENGTH = 100
MAX_INPUT_LENGTH = 4095         # client side cap on a line typed by the player

START_GAME = b"START GAME"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class ServerConfig:
    port: int = DEFAULT_PORT
    wordlist: Optional[Path] = None
    cert_dir: Path = CERT_DIR
    idle_timeout: Optional[float] = None    # seconds, None = wait forever


@dataclass
class ClientConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    cert_path: Path = CERT_DIR / LEAF_CERT_FILE
    fingerprint: Optional[str] = None       # hex SHA-256 of the leaf certificate (DER)
    strict_commitment: bool = False
    idle_timeout: Optional[float] = None
