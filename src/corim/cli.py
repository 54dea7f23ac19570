"""Command-line interface for corim."""

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Callable, Optional

from . import __version__, cbor_utils, cca, edn_utils, profiles, psa, tdx
from .coev import ConciseEvidence
from .comid import Comid
from .corim import Meta, SignedCorim, UnsignedCorim
from .cose_sign1 import load_public_key_pem, load_signer_pem
from .coserv import Coserv
from .coswid import SoftwareIdentity
from .cots import ConciseTaStore
from .encoding import json_loads
from .validation import DOCUMENT_DECODERS, DocumentValidator, strip_document_tag

logger = logging.getLogger(__name__)

_KIND_NAMES = {
    cbor_utils.TAG_COMID: "comid",
    cbor_utils.TAG_COSWID: "coswid",
    cbor_utils.TAG_COTS: "cots",
}


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _read_text(path: str) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


def _write_output(output_dir: str, name: str, data: bytes) -> Path:
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    path = out / name
    with open(path, "wb") as f:
        f.write(data)
    logger.debug("wrote %d bytes to %s", len(data), path)
    return path


def _output_name(doc: Any, template: str) -> str:
    """Name an output file after the document identifier, else after the template."""
    ident = ""
    tag_identity = getattr(doc, "tag_identity", None)
    if isinstance(doc, UnsignedCorim):
        ident = doc.get_id()
    elif tag_identity is not None and tag_identity.tag_id is not None:
        ident = str(tag_identity.tag_id.value)
    elif getattr(doc, "evidence_id", None) is not None:
        ident = str(doc.evidence_id.value)
    ident = ident.replace("/", "_").replace("\\", "_")
    return (ident or Path(template).stem) + ".cbor"


def _is_signed(data: bytes) -> bool:
    return bytes(data[:1]) == cbor_utils.tag_prefix(cbor_utils.TAG_COSE_SIGN1)


def _manifest(profile: Optional[str]) -> Optional[profiles.ProfileManifest]:
    if profile is None:
        return None
    manifest = profiles.get_profile_manifest(profile)
    if manifest is None:
        raise ValueError(f"unknown profile: {profile}")
    return manifest


# Template decoders: JSON template -> validated document


def _comid_from_template(text: str, profile: Optional[str]) -> Comid:
    manifest = _manifest(profile)
    comid = manifest.get_comid() if manifest else Comid()
    return comid.from_json(text)


def _cots_from_template(text: str, profile: Optional[str]) -> ConciseTaStore:
    return ConciseTaStore().from_json(text)


def _coev_from_template(text: str, profile: Optional[str]) -> ConciseEvidence:
    return profiles.unmarshal_concise_evidence_from_json(text)


def _coserv_from_template(text: str, profile: Optional[str]) -> Coserv:
    return Coserv().from_json(text)


_TEMPLATE_DECODERS: dict[str, Callable[[str, Optional[str]], Any]] = {
    "comid": _comid_from_template,
    "cots": _cots_from_template,
    "coev": _coev_from_template,
    "coserv": _coserv_from_template,
}


# Generic commands


def cmd_create(args: argparse.Namespace) -> int:
    failed = 0
    for template in args.templates:
        try:
            doc = _TEMPLATE_DECODERS[args.kind](_read_text(template), args.profile)
            path = _write_output(args.output_dir, _output_name(doc, template), doc.to_cbor())
        except (ValueError, OSError) as e:
            failed += 1
            print(f">> failed to create {args.kind} from {template}: {e}")
            continue
        print(f">> created {path} from {template}")
    return 1 if failed else 0


def cmd_display(args: argparse.Namespace) -> int:
    _manifest(args.profile)
    failed = 0
    for path in args.files:
        try:
            data = _read_bytes(path)
            doc = DOCUMENT_DECODERS[args.kind](data, args.profile)
        except (ValueError, OSError) as e:
            failed += 1
            print(f">> failed to display {path}: {e}")
            continue
        print(f">> [{path}]")
        print(doc.to_json(indent=2))
        if args.edn:
            print(edn_utils.cbor_to_diag(data))
    return 1 if failed else 0


def cmd_validate(args: argparse.Namespace) -> int:
    _manifest(args.profile)
    schema = _read_text(args.cddl) if args.cddl else None
    validator = DocumentValidator(schema, args.rule, args.profile)

    failed = 0
    for path in args.files:
        try:
            data = _read_bytes(path)
        except OSError as e:
            failed += 1
            print(f">> failed validation of {path}: {e}")
            continue

        if args.kind == "corim" and _is_signed(data):
            errors = _validate_signed_corim(data)
        else:
            errors = validator.validate_document(args.kind, data)["errors"]

        if errors:
            failed += 1
            print(f">> failed validation of {path}: {'; '.join(errors)}")
        else:
            print(f">> validated {path}")

    if failed:
        print(f"{failed}/{len(args.files)} validation(s) failed")
        return 1
    print(f"{len(args.files)} validation(s) succeeded")
    return 0


def _validate_signed_corim(data: bytes) -> list[str]:
    try:
        profiles.unmarshal_and_validate_signed_corim_from_cbor(data)
    except ValueError as e:
        return [f"semantic validation failed: {e}"]
    return []


# CoRIM commands


def _load_unsigned_corim_template(text: str) -> UnsignedCorim:
    raw = json_loads(text)
    manifest = None
    if isinstance(raw, dict) and isinstance(raw.get("profile"), str):
        manifest = profiles.get_profile_manifest(raw["profile"])
    rim = manifest.get_unsigned_corim() if manifest else UnsignedCorim()
    rim.populate_json(raw)
    return rim


def cmd_corim_create(args: argparse.Namespace) -> int:
    rim = _load_unsigned_corim_template(_read_text(args.template))

    for path in args.comid or []:
        data = strip_document_tag("comid", _read_bytes(path))
        try:
            profiles.unmarshal_comid_from_cbor(data, rim.profile)
        except ValueError as e:
            raise ValueError(f"error loading CoMID from {path}: {e}") from e
        rim.add_tag(cbor_utils.TAG_COMID, data)

    for path in args.coswid or []:
        data = strip_document_tag("coswid", _read_bytes(path))
        try:
            SoftwareIdentity().from_cbor(data)
        except ValueError as e:
            raise ValueError(f"error loading CoSWID from {path}: {e}") from e
        rim.add_tag(cbor_utils.TAG_COSWID, data)

    for path in args.cots or []:
        data = strip_document_tag("cots", _read_bytes(path))
        try:
            ConciseTaStore().from_cbor(data)
        except ValueError as e:
            raise ValueError(f"error loading CoTS from {path}: {e}") from e
        rim.add_tag(cbor_utils.TAG_COTS, data)

    name = args.output or _output_name(rim, args.template)
    path = _write_output(args.output_dir, name, rim.to_cbor())
    print(f">> created {path} from {args.template}")
    return 0


def _show_tags(rim: UnsignedCorim) -> None:
    for i, tag in enumerate(rim.iter_tags()):
        print(f">> [{tag.kind} at index {i}]")
        if tag.number == cbor_utils.TAG_COMID:
            print(profiles.unmarshal_comid_from_cbor(tag.content, rim.profile).to_json(indent=2))
        elif tag.number == cbor_utils.TAG_COSWID:
            print(SoftwareIdentity().from_cbor(tag.content).to_json(indent=2))
        elif tag.number == cbor_utils.TAG_COTS:
            print(ConciseTaStore().from_cbor(tag.content).to_json(indent=2))
        else:
            print(edn_utils.cbor_to_diag(tag.content))


def cmd_corim_display(args: argparse.Namespace) -> int:
    data = _read_bytes(args.file)
    if _is_signed(data):
        signed = profiles.unmarshal_signed_corim_from_cbor(data)
        rim = signed.unsigned_corim
        print("Meta:")
        print(signed.meta.to_json(indent=2))
        print("CoRIM:")
    else:
        rim = profiles.unmarshal_unsigned_corim_from_cbor(data)
    print(rim.to_json(indent=2))
    if args.show_tags:
        _show_tags(rim)
    if args.edn:
        print(edn_utils.cbor_to_diag(data))
    return 0


def cmd_corim_extract(args: argparse.Namespace) -> int:
    data = _read_bytes(args.file)
    if _is_signed(data):
        rim = profiles.unmarshal_signed_corim_from_cbor(data).unsigned_corim
    else:
        rim = profiles.unmarshal_unsigned_corim_from_cbor(data)

    stem = Path(args.file).stem
    for i, tag in enumerate(rim.iter_tags()):
        kind = _KIND_NAMES.get(tag.number, f"tag{tag.number}")
        path = _write_output(args.output_dir, f"{stem}-{kind}-{i:03d}.cbor", tag.content)
        print(f">> extracted {kind} to {path}")
    return 0


def cmd_corim_sign(args: argparse.Namespace) -> int:
    rim = profiles.unmarshal_unsigned_corim_from_cbor(_read_bytes(args.file))
    meta = Meta().from_json(_read_text(args.meta))
    signer = load_signer_pem(_read_bytes(args.key))

    signed = SignedCorim(rim, meta).sign(signer)
    name = args.output or f"signed-{Path(args.file).stem}.cbor"
    path = _write_output(args.output_dir, name, signed)
    print(f">> signed {args.file} into {path}")
    return 0


def cmd_corim_verify(args: argparse.Namespace) -> int:
    signed = profiles.unmarshal_signed_corim_from_cbor(_read_bytes(args.file))
    signed.verify(load_public_key_pem(_read_bytes(args.key)))
    print(f">> verified {args.file}")
    return 0


# Parser


def _add_common(sub: argparse.ArgumentParser, kind: str, profile: bool) -> None:
    if profile:
        sub.add_argument("--profile", help="Profile (URI or OID) of the documents")
    sub.set_defaults(kind=kind, profile=None)


def _add_generic_commands(
    subparsers: Any, kind: str, label: str, profile: bool = False
) -> argparse.ArgumentParser:
    group = subparsers.add_parser(kind, help=f"{label} manipulation")
    actions = group.add_subparsers(dest="action", help="Available actions")

    create = actions.add_parser("create", help=f"Create {label} from JSON templates")
    create.add_argument("templates", nargs="+", help="JSON template file(s)")
    create.add_argument("--output-dir", "-o", default=".", help="Output directory")
    _add_common(create, kind, profile)
    create.set_defaults(handler=cmd_create)

    display = actions.add_parser("display", help=f"Display {label} as JSON")
    display.add_argument("files", nargs="+", help="CBOR file(s)")
    display.add_argument("--edn", action="store_true", help="Also print diagnostic notation")
    _add_common(display, kind, profile)
    display.set_defaults(handler=cmd_display)

    validate = actions.add_parser("validate", help=f"Validate {label}")
    _add_validate_arguments(validate)
    _add_common(validate, kind, profile)

    group.set_defaults(group_parser=group)
    return group


def _add_validate_arguments(validate: argparse.ArgumentParser) -> None:
    validate.add_argument("files", nargs="+", help="CBOR file(s)")
    validate.add_argument("--cddl", help="CDDL schema file replacing the built-in schema")
    validate.add_argument("--rule", help="CDDL rule to validate against")
    validate.set_defaults(handler=cmd_validate)


def _add_corim_commands(subparsers: Any) -> None:
    group = subparsers.add_parser("corim", help="CoRIM manipulation")
    actions = group.add_subparsers(dest="action", help="Available actions")

    create = actions.add_parser("create", help="Create an unsigned CoRIM from a JSON template")
    create.add_argument("template", help="JSON template file")
    create.add_argument("--comid", nargs="+", help="CoMID CBOR file(s) to embed")
    create.add_argument("--coswid", nargs="+", help="CoSWID CBOR file(s) to embed")
    create.add_argument("--cots", nargs="+", help="CoTS CBOR file(s) to embed")
    create.add_argument("--output-dir", "-o", default=".", help="Output directory")
    create.add_argument("--output", help="Output file name")
    create.set_defaults(handler=cmd_corim_create)

    display = actions.add_parser("display", help="Display a signed or unsigned CoRIM")
    display.add_argument("file", help="CBOR file")
    display.add_argument("--show-tags", action="store_true", help="Also display embedded tags")
    display.add_argument("--edn", action="store_true", help="Also print diagnostic notation")
    display.set_defaults(handler=cmd_corim_display)

    validate = actions.add_parser("validate", help="Validate signed or unsigned CoRIMs")
    _add_validate_arguments(validate)
    validate.set_defaults(kind="corim", profile=None)

    extract = actions.add_parser("extract", help="Extract the embedded tags of a CoRIM")
    extract.add_argument("file", help="CBOR file")
    extract.add_argument("--output-dir", "-o", default=".", help="Output directory")
    extract.set_defaults(handler=cmd_corim_extract)

    sign = actions.add_parser("sign", help="Sign an unsigned CoRIM")
    sign.add_argument("file", help="Unsigned CoRIM CBOR file")
    sign.add_argument("--key", "-k", required=True, help="PEM private key")
    sign.add_argument("--meta", "-m", required=True, help="CoRIM meta JSON template")
    sign.add_argument("--output-dir", "-o", default=".", help="Output directory")
    sign.add_argument("--output", help="Output file name")
    sign.set_defaults(handler=cmd_corim_sign)

    verify = actions.add_parser("verify", help="Verify a signed CoRIM")
    verify.add_argument("file", help="Signed CoRIM CBOR file")
    verify.add_argument("--key", "-k", required=True, help="PEM public key or certificate")
    verify.set_defaults(handler=cmd_corim_verify)

    group.set_defaults(group_parser=group)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="corim",
        description="CoRIM, CoMID, CoTS, Concise Evidence and CoSERV toolkit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    _add_generic_commands(subparsers, "comid", "CoMID", profile=True)
    _add_corim_commands(subparsers)
    _add_generic_commands(subparsers, "cots", "CoTS")
    _add_generic_commands(subparsers, "coev", "Concise Evidence")
    _add_generic_commands(subparsers, "coserv", "CoSERV")

    return parser


def register_known_profiles() -> None:
    """Make the bundled profiles available to the commands."""
    cca.register_profile()
    cca.register_realm_profile()
    psa.register_profile()
    tdx.register_profile()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0
    if not getattr(args, "handler", None):
        args.group_parser.print_help()
        return 2

    register_known_profiles()
    try:
        return args.handler(args)
    except (ValueError, OSError) as e:
        logger.error("%s %s failed: %s", args.command, args.action, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
