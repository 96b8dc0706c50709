#!/usr/bin/env python3
import atheris
import sys

with atheris.instrument_imports():
    from secaggplus.crypto import decrypt_share
    from secaggplus.errors import SecAggError
    from secaggplus.masking import bytes_to_int_elements
    from secaggplus.shamir import ShamirShare, deserialize_shares

def TestOneInput(data):
    """Fuzz share, bundle and encrypted payload parsing."""
    fdp = atheris.FuzzedDataProvider(data)

    # Fuzz single share parsing
    try:
        raw = fdp.ConsumeBytes(fdp.ConsumeIntInRange(0, 256))
        ShamirShare.from_bytes(raw)
    except SecAggError:
        pass

    # Fuzz count-prefixed share bundles
    try:
        raw = fdp.ConsumeBytes(fdp.ConsumeIntInRange(0, 1024))
        deserialize_shares(raw)
    except SecAggError:
        pass

    # Fuzz encrypted payloads against a fixed secret
    try:
        decrypt_share(fdp.ConsumeBytes(fdp.ConsumeIntInRange(0, 256)), b"\x00" * 32)
    except SecAggError:
        pass

    bytes_to_int_elements(fdp.ConsumeRemainingBytes())

def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()

if __name__ == "__main__":
    main()
