from .signature import SIGNATURE_HEADER, compute_signature, verify_signature

__all__ = ["SIGNATURE_HEADER", "compute_signature", "verify_signature"]
