"""
Application entry point: the `mkrpki` command line.

Composition root: loads settings, configures structlog, creates the
concrete adapters and hands each subcommand's parsed request to its
pipeline run.

This is the ONLY place where concrete adapter classes are instantiated and
the only place text input is parsed. Everything below works on domain
models and Protocol interfaces.

Responsibilities:
  1. Load and validate configuration (AppSettings)
  2. Configure structlog (human-readable, on stderr)
  3. Turn command-line text into domain requests (dates, URIs, resources)
  4. Run the pipeline inside a LoggingExecutionContext
  5. Map the outcome to output and exit status: written paths on stdout
     and status 0, or `error: CODE: message` on stderr and status 1
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, TypeVar

import click
import structlog
from pydantic import ValidationError
from railway import ErrorCode, Failure, LoggingExecutionContext, Result, ResultFailures, Success

from mkrpki import __version__
from mkrpki.adapters.filesystem import AtomicArtifactWriter, ManifestFileDigester
from mkrpki.adapters.keys import DerKeyStore, RsaKeyGenerator
from mkrpki.config import AppSettings
from mkrpki.domain.models import (
    INHERIT,
    CertificateSpec,
    CrlSpec,
    Explicit,
    IpFamily,
    OverclaimPolicy,
    ResourceFamily,
    ResourceSet,
    RevokedEntry,
    RoaPayload,
    SignedObjectSpec,
    Validity,
)
from mkrpki.encoding.resources import parse_as_block, parse_as_number, parse_ip_block
from mkrpki.encoding.roa import parse_roa_prefix
from mkrpki.pipeline import (
    Adapters,
    CaRequest,
    CrlRequest,
    KeyRequest,
    ManifestRequest,
    RoaRequest,
    TaRequest,
    run_ca,
    run_crl,
    run_key,
    run_manifest,
    run_roa,
    run_ta,
)

R = TypeVar("R")


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for human-readable console logging on stderr.

    stdout is reserved for the list of written files. The logger factory
    looks sys.stderr up on every call so redirected streams are honoured.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=lambda *_: structlog.PrintLogger(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


@dataclass(frozen=True, slots=True)
class _Runtime:
    settings: AppSettings
    adapters: Adapters


def _create_adapters(settings: AppSettings) -> Adapters:
    """Instantiate all concrete adapters from application settings."""
    key_store = DerKeyStore()
    return Adapters(
        key_generator=RsaKeyGenerator(),
        key_loader=key_store,
        digester=ManifestFileDigester(workers=settings.manifest_hash_workers),
        writer=AtomicArtifactWriter(),
    )


# ─────────────────────── Parameter types ───────────────────────


class IsoDateTime(click.ParamType):
    """ISO 8601 date or date-time; naive values are UTC."""

    name = "datetime"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> datetime:
        if isinstance(value, datetime):
            return value
        try:
            moment = datetime.fromisoformat(value)
        except ValueError:
            self.fail(f"{value!r} is not an ISO 8601 date or date-time", param, ctx)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        return moment.astimezone(UTC)


class PublicationUri(click.ParamType):
    """An rsync:// or https:// URI (or only the schemes given)."""

    name = "uri"

    def __init__(self, schemes: tuple[str, ...] = ("rsync", "https")) -> None:
        self.schemes = schemes

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> str:
        scheme, separator, rest = str(value).partition("://")
        if not separator or scheme.lower() not in self.schemes or not rest:
            allowed = " or ".join(f"{s}://" for s in self.schemes)
            self.fail(f"{value!r} is not an {allowed} URI", param, ctx)
        return str(value)


DATETIME = IsoDateTime()
URI = PublicationUri()
RSYNC_URI = PublicationUri(("rsync",))
HTTPS_URI = PublicationUri(("https",))
PATH = click.Path(dir_okay=False, path_type=Path)


# ─────────────────────── Input parsing ───────────────────────


def _split(values: Iterable[str]) -> list[str]:
    """Flatten repeated options that may also hold comma-separated lists."""
    return [part.strip() for value in values for part in value.split(",") if part.strip()]


def _ip_family(values: Iterable[str], family: IpFamily, inherit: bool) -> Result[ResourceFamily]:
    texts = _split(values)
    if inherit and texts:
        return ResultFailures.invalid_resource_spec(
            f"{family.name} resources cannot be both inherited and explicit"
        )
    if inherit:
        return Result.success(INHERIT)
    return Result.all_of(parse_ip_block(text, family) for text in texts).map(
        lambda blocks: Explicit(tuple(blocks))
    )


def _as_family(values: Iterable[str], inherit: bool) -> Result[ResourceFamily]:
    texts = _split(values)
    if inherit and texts:
        return ResultFailures.invalid_resource_spec("AS resources cannot be both inherited and explicit")
    if inherit:
        return Result.success(INHERIT)
    return Result.all_of(parse_as_block(text) for text in texts).map(lambda blocks: Explicit(tuple(blocks)))


def parse_resource_set(
    v4: Iterable[str],
    v6: Iterable[str],
    asn: Iterable[str],
    inherit_v4: bool = False,
    inherit_v6: bool = False,
    inherit_as: bool = False,
) -> Result[ResourceSet]:
    return Result.all_of([
        _ip_family(v4, IpFamily.IPV4, inherit_v4),
        _ip_family(v6, IpFamily.IPV6, inherit_v6),
        _as_family(asn, inherit_as),
    ]).map(lambda families: ResourceSet(*families))


def _now() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


def _window_end(start: datetime, end: datetime | None, days: int | None, default_days: int) -> datetime:
    if end is not None:
        return end
    return start + timedelta(days=days if days is not None else default_days)


def _validity(
    not_before: datetime | None, not_after: datetime | None, days: int | None, default_days: int
) -> Validity:
    start = not_before or _now()
    return Validity(start, _window_end(start, not_after, days, default_days))


def parse_revoked_entry(text: str, default_time: datetime) -> Result[RevokedEntry]:
    """Parse "SERIAL" or "SERIAL:DATE"; the date defaults to the CRL's thisUpdate."""
    serial_text, _, date_text = text.strip().partition(":")
    if not serial_text.isdigit():
        return ResultFailures.invalid_serial(f"invalid revoked serial {text!r}")
    if not date_text:
        return Result.success(RevokedEntry(int(serial_text), default_time))
    return Result.from_computation(
        lambda: RevokedEntry(int(serial_text), DATETIME.convert(date_text, None, None)),
        ErrorCode.INVALID_VALIDITY_WINDOW,
        f"invalid revocation date in {text!r}",
    )


# ─────────────────────── Execution ───────────────────────


def _execute(
    operation: str,
    build_request: Callable[[], Result[R]],
    run: Callable[[R, Adapters], Result[list[Path]]],
) -> None:
    """Parse, run and report one subcommand; exits with status 1 on failure."""
    ctx = click.get_current_context()
    runtime = ctx.find_object(_Runtime)
    result = LoggingExecutionContext(operation=operation).execute(
        lambda: build_request().flat_map(lambda request: run(request, runtime.adapters))
    )
    match result:
        case Success(paths):
            for path in paths:
                click.echo(str(path))
        case Failure(error):
            click.echo(f"error: {error.describe()}", err=True)
            ctx.exit(1)


def _validity_options(command: Callable) -> Callable:
    """--serial, --not-before, --not-after and --days, shared by every certificate command."""
    for option in reversed([
        click.option("--serial", type=int, required=True, help="Certificate serial number."),
        click.option("--not-before", type=DATETIME, help="Start of validity (default: now)."),
        click.option("--not-after", type=DATETIME, help="End of validity."),
        click.option("--days", type=click.IntRange(min=1), help="Validity in days when --not-after is not given."),
    ]):
        command = option(command)
    return command


def _resource_options(command: Callable) -> Callable:
    for option in reversed([
        click.option("--v4", multiple=True, help="IPv4 prefix or range (repeatable, comma-separated)."),
        click.option("--v6", multiple=True, help="IPv6 prefix or range (repeatable, comma-separated)."),
        click.option("--as", "asn", multiple=True, help="AS number or range (repeatable, comma-separated)."),
    ]):
        command = option(command)
    return command


# ─────────────────────── Commands ───────────────────────


@click.group()
@click.version_option(__version__, prog_name="mkrpki")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Creates RPKI objects."""
    try:
        settings = AppSettings()
    except ValidationError as e:
        click.echo(f"error: {ResultFailures.configuration_error(str(e)).error().describe()}", err=True)
        ctx.exit(1)
    configure_structlog(settings.log_level)
    structlog.get_logger().debug("app.starting", version=__version__, log_level=settings.log_level)
    ctx.obj = _Runtime(settings, _create_adapters(settings))


@cli.command()
@click.option("--private", "private_path", type=PATH, required=True, help="Where to write the private key (PKCS#1 DER).")
@click.option("--public", "public_path", type=PATH, required=True, help="Where to write the public key (SubjectPublicKeyInfo DER).")
def key(private_path: Path, public_path: Path) -> None:
    """Create a new RSA-2048 key pair."""
    _execute("key", lambda: Result.success(KeyRequest(private_path, public_path)), run_key)


@cli.command()
@click.option("--key", "key_path", type=PATH, required=True, help="Private key of the trust anchor.")
@_validity_options
@click.option("--ca-repository", type=URI, required=True)
@click.option("--rpki-manifest", type=URI, required=True)
@click.option("--rpki-notify", type=HTTPS_URI)
@_resource_options
@click.option("--tal-rsync-uri", type=RSYNC_URI, required=True, help="rsync URI to include in the TAL.")
@click.option("--tal-https-uri", type=HTTPS_URI, help="Optional HTTPS URI to include in the TAL.")
@click.option("--output", type=PATH, required=True, help="Where to write the certificate.")
@click.option("--output-tal", type=PATH, help="Where to write the TAL; no TAL is written without it.")
@click.pass_obj
def ta(runtime: _Runtime, key_path: Path, serial: int, not_before: datetime | None,
       not_after: datetime | None, days: int | None, ca_repository: str, rpki_manifest: str,
       rpki_notify: str | None, v4: tuple[str, ...], v6: tuple[str, ...], asn: tuple[str, ...],
       tal_rsync_uri: str, tal_https_uri: str | None, output: Path, output_tal: Path | None) -> None:
    """Create a self-signed trust anchor certificate and, with --output-tal, its TAL."""
    validity = _validity(not_before, not_after, days, runtime.settings.default_validity_days)
    tal_uris = (tal_rsync_uri,) + ((tal_https_uri,) if tal_https_uri else ())

    def build_request() -> Result[TaRequest]:
        return parse_resource_set(v4, v6, asn).map(lambda resources: TaRequest(
            key_path=key_path,
            spec=CertificateSpec(
                serial=serial,
                validity=validity,
                resources=resources,
                ca_repository=ca_repository,
                rpki_manifest=rpki_manifest,
                rpki_notify=rpki_notify,
            ),
            tal_uris=tal_uris,
            output=output,
            output_tal=output_tal,
        ))

    _execute("ta", build_request, run_ta)


@cli.command()
@click.option("--issuer-key", type=PATH, required=True, help="Private key of the issuing CA.")
@click.option("--subject-key", type=PATH, required=True, help="Public key of the new CA.")
@_validity_options
@click.option("--trim-resources", is_flag=True, help="Trim resources to the issuer's instead of refusing.")
@click.option("--issuer-v4", multiple=True, help="IPv4 resources held by the issuer.")
@click.option("--issuer-v6", multiple=True, help="IPv6 resources held by the issuer.")
@click.option("--issuer-as", multiple=True, help="AS resources held by the issuer.")
@click.option("--crl", "crl_uri", type=URI, required=True, help="URI of the issuer's CRL.")
@click.option("--ca-issuer", type=URI, required=True, help="URI of the issuer's certificate.")
@click.option("--ca-repository", type=URI, required=True)
@click.option("--rpki-manifest", type=URI, required=True)
@click.option("--rpki-notify", type=HTTPS_URI)
@_resource_options
@click.option("--inherit-v4", is_flag=True)
@click.option("--inherit-v6", is_flag=True)
@click.option("--inherit-as", is_flag=True)
@click.option("--output", type=PATH, required=True)
@click.pass_obj
def cer(runtime: _Runtime, issuer_key: Path, subject_key: Path, serial: int,
        not_before: datetime | None, not_after: datetime | None, days: int | None,
        trim_resources: bool, issuer_v4: tuple[str, ...], issuer_v6: tuple[str, ...],
        issuer_as: tuple[str, ...], crl_uri: str, ca_issuer: str, ca_repository: str,
        rpki_manifest: str, rpki_notify: str | None, v4: tuple[str, ...], v6: tuple[str, ...],
        asn: tuple[str, ...], inherit_v4: bool, inherit_v6: bool, inherit_as: bool,
        output: Path) -> None:
    """Create a CA certificate."""
    validity = _validity(not_before, not_after, days, runtime.settings.default_validity_days)
    has_issuer_resources = bool(issuer_v4 or issuer_v6 or issuer_as)

    def issuer_resources() -> Result[ResourceSet]:
        if not has_issuer_resources:
            return Result.success(ResourceSet())
        return parse_resource_set(issuer_v4, issuer_v6, issuer_as)

    def build_request() -> Result[CaRequest]:
        return Result.combine(
            parse_resource_set(v4, v6, asn, inherit_v4, inherit_v6, inherit_as),
            issuer_resources(),
            lambda resources, held: CaRequest(
                issuer_key_path=issuer_key,
                subject_key_path=subject_key,
                spec=CertificateSpec(
                    serial=serial,
                    validity=validity,
                    resources=resources,
                    ca_repository=ca_repository,
                    rpki_manifest=rpki_manifest,
                    rpki_notify=rpki_notify,
                    crl_uri=crl_uri,
                    ca_issuer=ca_issuer,
                    overclaim=OverclaimPolicy.TRIM if trim_resources else OverclaimPolicy.REFUSE,
                    issuer_resources=held if has_issuer_resources else None,
                ),
                output=output,
            ),
        )

    _execute("cer", build_request, run_ca)


@cli.command()
@click.option("--issuer-key", type=PATH, required=True, help="Private key of the issuing CA.")
@click.option("--this-update", type=DATETIME, help="Time of this update (default: now).")
@click.option("--next-update", type=DATETIME, help="Time of the next update.")
@click.option("--next-days", type=click.IntRange(min=1), help="Days until the next update.")
@click.option("-c", "--cert", "revoked", multiple=True, help="Revoked serial, optionally SERIAL:DATE.")
@click.option("--crl", "number", type=int, required=True, help="CRL number.")
@click.option("--output", type=PATH, required=True)
@click.pass_obj
def crl(runtime: _Runtime, issuer_key: Path, this_update: datetime | None,
        next_update: datetime | None, next_days: int | None, revoked: tuple[str, ...],
        number: int, output: Path) -> None:
    """Create a certificate revocation list."""
    start = this_update or _now()
    end = _window_end(start, next_update, next_days, runtime.settings.default_next_update_days)

    def build_request() -> Result[CrlRequest]:
        return Result.all_of(parse_revoked_entry(text, start) for text in _split(revoked)).map(
            lambda entries: CrlRequest(
                issuer_key_path=issuer_key,
                spec=CrlSpec(this_update=start, next_update=end, number=number, revoked=tuple(entries)),
                output=output,
            )
        )

    _execute("crl", build_request, run_crl)


@cli.command()
@click.option("--issuer-key", type=PATH, required=True, help="Private key of the issuing CA.")
@_validity_options
@click.option("--crl", "crl_uri", type=URI, required=True, help="URI of the issuer's CRL.")
@click.option("--ca-issuer", type=URI, required=True, help="URI of the issuer's certificate.")
@click.option("--signed-object", type=URI, required=True, help="Publication URI of the ROA.")
@click.option("--asn", required=True, help="Origin AS number.")
@click.option("--prefixes", multiple=True, help="PREFIX/LEN[-MAXLEN] (repeatable, comma-separated).")
@click.option("--output", type=PATH, required=True)
@click.pass_obj
def roa(runtime: _Runtime, issuer_key: Path, serial: int, not_before: datetime | None,
        not_after: datetime | None, days: int | None, crl_uri: str, ca_issuer: str,
        signed_object: str, asn: str, prefixes: tuple[str, ...], output: Path) -> None:
    """Create a route origin authorization."""
    spec = SignedObjectSpec(
        serial=serial,
        validity=_validity(not_before, not_after, days, runtime.settings.default_validity_days),
        crl_uri=crl_uri,
        ca_issuer=ca_issuer,
        signed_object=signed_object,
    )

    def build_request() -> Result[RoaRequest]:
        return Result.combine(
            parse_as_number(asn),
            Result.all_of(parse_roa_prefix(text) for text in _split(prefixes)),
            lambda number, entries: RoaRequest(
                issuer_key_path=issuer_key,
                spec=spec,
                payload=RoaPayload(asn=number, prefixes=tuple(entries)),
                output=output,
            ),
        )

    _execute("roa", build_request, run_roa)


@cli.command()
@click.option("--issuer-key", type=PATH, required=True, help="Private key of the issuing CA.")
@_validity_options
@click.option("--crl", "crl_uri", type=URI, required=True, help="URI of the issuer's CRL.")
@click.option("--ca-issuer", type=URI, required=True, help="URI of the issuer's certificate.")
@click.option("--number", type=int, required=True, help="Manifest number.")
@click.option("--signed-object", type=URI, required=True, help="Publication URI of the manifest.")
@click.option("--this-update", type=DATETIME, help="Time of this update (default: now).")
@click.option("--next-update", type=DATETIME, help="Time of the next update.")
@click.option("--next-days", type=click.IntRange(min=1), help="Days until the next update.")
@_resource_options
@click.option("--files", multiple=True, type=click.Path(path_type=Path), help="File to list (repeatable).")
@click.option("--output", type=PATH, required=True)
@click.pass_obj
def mft(runtime: _Runtime, issuer_key: Path, serial: int, not_before: datetime | None,
        not_after: datetime | None, days: int | None, crl_uri: str, ca_issuer: str, number: int,
        signed_object: str, this_update: datetime | None, next_update: datetime | None,
        next_days: int | None, v4: tuple[str, ...], v6: tuple[str, ...], asn: tuple[str, ...],
        files: tuple[Path, ...], output: Path) -> None:
    """Create a manifest listing the given files."""
    start = this_update or _now()
    end = _window_end(start, next_update, next_days, runtime.settings.default_next_update_days)
    validity = _validity(not_before, not_after, days, runtime.settings.default_validity_days)
    explicit_resources = bool(v4 or v6 or asn)

    def build_request() -> Result[ManifestRequest]:
        return parse_resource_set(v4, v6, asn).map(lambda resources: ManifestRequest(
            issuer_key_path=issuer_key,
            spec=SignedObjectSpec(
                serial=serial,
                validity=validity,
                crl_uri=crl_uri,
                ca_issuer=ca_issuer,
                signed_object=signed_object,
                resources=resources if explicit_resources else None,
            ),
            number=number,
            this_update=start,
            next_update=end,
            files=files,
            output=output,
        ))

    _execute("mft", build_request, run_manifest)


def main() -> None:
    cli(prog_name="mkrpki")


if __name__ == "__main__":
    main()
