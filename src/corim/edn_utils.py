"""EDN (Extended Diagnostic Notation) helpers.

Thin wrapper over the cbor-diag library, used to display CoRIM, CoMID,
CoTS, Concise Evidence and CoSERV objects in a human readable form and to
write test vectors in diagnostic notation.
"""

import cbor_diag  # type: ignore[import-untyped]

from . import cbor_utils


def cbor_to_diag(cbor_data: bytes) -> str:
    """Convert CBOR data to diagnostic notation.

    Args:
        cbor_data: CBOR encoded bytes

    Returns:
        Diagnostic notation string

    Raises:
        ValueError: If the input is not well-formed CBOR
    """
    # reject malformed input with the codec error messages
    cbor_utils.decode(cbor_data)
    return cbor_diag.cbor2diag(cbor_data)  # type: ignore[no-any-return]


def diag_to_cbor(diag_str: str) -> bytes:
    """Convert diagnostic notation to CBOR data.

    Args:
        diag_str: Diagnostic notation string

    Returns:
        CBOR encoded bytes
    """
    return cbor_diag.diag2cbor(diag_str)  # type: ignore[no-any-return]

