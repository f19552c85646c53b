"""
PCR Attestation Audit Tool
==========================

Command-line access to the attestation evidence pipeline in pcr_canonical.

Usage:
    $ pcr-audit decode attestation.bin
    $ pcr-audit digest i-0123456789abcdef0
"""

__version__ = "1.0.0"
