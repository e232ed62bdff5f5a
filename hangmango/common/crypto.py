import base64, os
from typing import Tuple

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives.asymmetric import rsa, padding
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from hangmango.common.config import RSA_BITS, SESSION_KEY_SIZE
from hangmango.common.errors import AuthenticationFailure, CryptoError, DecryptionError

NONCE_SIZE = 12  # 96-bit GCM nonce

_OAEP = padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()),
                     algorithm=hashes.SHA256(),
                     label=None)


def _pss() -> padding.PSS:
    return padding.PSS(mgf=padding.MGF1(hashes.SHA256()),
                       salt_length=padding.PSS.MAX_LENGTH)


def rsa_generate(bits: int = RSA_BITS) -> Tuple[rsa.RSAPrivateKey, rsa.RSAPublicKey]:
    '''
    The function generates an RSA keypair.
        Input: key size in bits (default 2048)
        Output: (private key, public key)
    '''
    priv = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    return priv, priv.public_key()

def rsa_public_pem(pub: rsa.RSAPublicKey) -> bytes:
    ''' This function serializes a public key as SubjectPublicKeyInfo PEM '''
    return pub.public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo
    )

def rsa_load_public_pem(data: bytes) -> rsa.RSAPublicKey:
    '''
    Inverse of rsa_public_pem().
    Raises ValueError if the bytes are not a PEM encoded RSA public key.
    '''
    pub = serialization.load_pem_public_key(data)
    if not isinstance(pub, rsa.RSAPublicKey):
        raise ValueError("not an RSA public key")
    return pub

def rsa_private_pem(priv: rsa.RSAPrivateKey) -> bytes:
    ''' Export a private key as unencrypted PKCS#8 PEM '''
    return priv.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )

def rsa_load_private_pem(data: bytes) -> rsa.RSAPrivateKey:
    priv = serialization.load_pem_private_key(data, password=None)
    if not isinstance(priv, rsa.RSAPrivateKey):
        raise ValueError("not an RSA private key")
    return priv

def rsa_encrypt(pub: rsa.RSAPublicKey, plaintext: bytes) -> bytes:
    '''
    This function encrypts a small payload with RSA-OAEP (SHA-256).
    Input:
        - pub: recipient's RSA public key
        - plaintext: bytes, at most key size minus padding overhead (190 bytes for 2048-bit keys)
    Output: ciphertext bytes
    '''
    try:
        return pub.encrypt(plaintext, _OAEP)
    except ValueError as exc:
        raise CryptoError(f"RSA encryption failed: {exc}") from exc

def rsa_decrypt(priv: rsa.RSAPrivateKey, ciphertext: bytes) -> bytes:
    '''
    This function decrypts an RSA-OAEP ciphertext with our private key.
    It never returns partial output: any padding or format mismatch raises DecryptionError.
    '''
    try:
        return priv.decrypt(ciphertext, _OAEP)
    except ValueError as exc:
        raise DecryptionError("RSA decryption failed") from exc

def rsa_sign(priv: rsa.RSAPrivateKey, message: bytes) -> bytes:
    '''
    Sign raw bytes with RSA-PSS over a SHA-256 digest.
    PSS is salted, so two signatures of the same message differ.
    '''
    return priv.sign(message, _pss(), hashes.SHA256())

def rsa_verify(pub: rsa.RSAPublicKey, message: bytes, signature: bytes) -> bool:
    ''' Verify a signature produced by rsa_sign(). Returns False on any mismatch. '''
    try:
        pub.verify(signature, message, _pss(), hashes.SHA256())
        return True
    except InvalidSignature:
        return False

def aes_key(size: int = SESSION_KEY_SIZE) -> bytes:
    '''This function generates a random session key (32 bytes = AES-256)'''
    return AESGCM.generate_key(bit_length=size * 8)

def aes_seal(key: bytes, plaintext: bytes) -> Tuple[bytes, bytes]:
    '''
    This function encrypts plaintext using AES-GCM under a fresh random nonce.
    Input:
        - key: session key in bytes
        - plaintext: data to encrypt in bytes
    Output: tuple (ciphertext||tag, nonce)
    '''
    nonce = os.urandom(NONCE_SIZE)  # never reused: drawn fresh for every call
    return AESGCM(key).encrypt(nonce, plaintext, None), nonce

def aes_open(key: bytes, ciphertext: bytes, nonce: bytes) -> bytes:
    '''
    This function decrypts and authenticates an AES-GCM ciphertext.
    Raises AuthenticationFailure if the tag does not verify; callers must drop the session.
    '''
    if len(nonce) != NONCE_SIZE:
        raise AuthenticationFailure(f"bad nonce length {len(nonce)}")
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise AuthenticationFailure("AEAD tag did not verify") from exc

def b64(b: bytes) -> str:
    ''' This function encodes bytes to a Base64 string '''
    return base64.b64encode(b).decode()

def b64d(s: str) -> bytes:
    ''' This function decodes a Base64 string to bytes, rejecting non-alphabet characters '''
    return base64.b64decode(s.encode(), validate=True)
