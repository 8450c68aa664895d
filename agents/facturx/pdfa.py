"""PDF/A-3 Einbettung und Extraktion der Factur-X-XML (pikepdf).

Das Quell-PDF wird nur im Speicher verarbeitet. Ablauf beim Einbetten:

1. Quell-PDF laden (nur Owner-Passwort wird toleriert, kein Entschlüsseln
   mit Benutzerpasswort)
2. ``factur-x.xml`` als EmbeddedFile (``application/xml``) mit Filespec
   ``/AFRelationship /Data`` anlegen und im Namensbaum ``/EmbeddedFiles``
   registrieren
3. ``/AF`` im Katalog ergänzen
4. DocInfo und XMP (PDF/A-3B inkl. Factur-X-Extension-Schema) setzen
5. Ohne Objekt-Streams und ohne Verschlüsselung speichern

Fehler werden als ``EmbeddingError`` mit Stufe (``load``, ``embed``,
``serialize``) weitergereicht; es gibt keine Teilausgabe.
"""

from __future__ import annotations

import io
from datetime import UTC, datetime
from html import escape
from typing import Optional

import pikepdf
from pikepdf import Array, Dictionary, Name, NameTree, String

from backend.core.config import settings
from backend.core.observability.logging import get_logger

from .dto import clean_text
from .errors import EmbeddingError, ExtractionError, SourcePdfError
from .profiles import ConformanceProfile

logger = get_logger(__name__)

ATTACHMENT_NAME = "factur-x.xml"
ATTACHMENT_MIME = "application/xml"
ATTACHMENT_DESCRIPTION = "Factur-X XML data (EN 16931)"
DOCUMENT_SUBJECT = "Facture electronique conforme Factur-X"
FACTURX_XMP_NS = "urn:factur-x:pdfa:CrossIndustryDocument:invoice:1p0#"
FACTURX_VERSION = "1.0"
FACTURX_DOCUMENT_TYPE = "INVOICE"

_ATTACHMENT_MARKERS = ("factur-x", "facturx")

_XMP_TEMPLATE = """<?xpacket begin="" id="W5M0MpCehiHzreSzNTczkc9d"?>
<x:xmpmeta xmlns:x="adobe:ns:meta/">
  <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
    <rdf:Description rdf:about=""
        xmlns:pdfaid="http://www.aiim.org/pdfa/ns/id/"
        xmlns:dc="http://purl.org/dc/elements/1.1/"
        xmlns:xmp="http://ns.adobe.com/xap/1.0/"
        xmlns:pdf="http://ns.adobe.com/pdf/1.3/"
        xmlns:pdfaExtension="http://www.aiim.org/pdfa/ns/extension/"
        xmlns:pdfaSchema="http://www.aiim.org/pdfa/ns/schema#"
        xmlns:pdfaProperty="http://www.aiim.org/pdfa/ns/property#"
        xmlns:fx="{fx_ns}">
      <pdfaid:part>3</pdfaid:part>
      <pdfaid:conformance>B</pdfaid:conformance>
      <dc:title>
        <rdf:Alt>
          <rdf:li xml:lang="x-default">{title}</rdf:li>
        </rdf:Alt>
      </dc:title>
      <dc:creator>
        <rdf:Seq>
          <rdf:li>{creator}</rdf:li>
        </rdf:Seq>
      </dc:creator>
      <dc:description>
        <rdf:Alt>
          <rdf:li xml:lang="x-default">{subject}</rdf:li>
        </rdf:Alt>
      </dc:description>
      <xmp:CreateDate>{timestamp}</xmp:CreateDate>
      <xmp:ModifyDate>{timestamp}</xmp:ModifyDate>
      <xmp:CreatorTool>{creator}</xmp:CreatorTool>
      <pdf:Producer>{producer}</pdf:Producer>
      <pdfaExtension:schemas>
        <rdf:Bag>
          <rdf:li rdf:parseType="Resource">
            <pdfaSchema:schema>Factur-X PDFA Extension Schema</pdfaSchema:schema>
            <pdfaSchema:namespaceURI>{fx_ns}</pdfaSchema:namespaceURI>
            <pdfaSchema:prefix>fx</pdfaSchema:prefix>
            <pdfaSchema:property>
              <rdf:Seq>
{properties}
              </rdf:Seq>
            </pdfaSchema:property>
          </rdf:li>
        </rdf:Bag>
      </pdfaExtension:schemas>
      <fx:DocumentFileName>{file_name}</fx:DocumentFileName>
      <fx:DocumentType>{document_type}</fx:DocumentType>
      <fx:Version>{version}</fx:Version>
      <fx:ConformanceLevel>{conformance_level}</fx:ConformanceLevel>
    </rdf:Description>
  </rdf:RDF>
</x:xmpmeta>
<?xpacket end="w"?>"""

_XMP_PROPERTY = """                <rdf:li rdf:parseType="Resource">
                  <pdfaProperty:name>{name}</pdfaProperty:name>
                  <pdfaProperty:valueType>Text</pdfaProperty:valueType>
                  <pdfaProperty:category>external</pdfaProperty:category>
                  <pdfaProperty:description>{description}</pdfaProperty:description>
                </rdf:li>"""

_FX_PROPERTIES = (
    ("DocumentFileName", "Name of the embedded XML invoice file"),
    ("DocumentType", "Type of the hybrid document"),
    ("Version", "Version of the Factur-X standard"),
    ("ConformanceLevel", "Conformance level of the Factur-X document"),
)


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(UTC).replace(microsecond=0)
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


def _xmp_date(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def _pdf_date(dt: datetime) -> str:
    return dt.strftime("D:%Y%m%d%H%M%SZ")


def build_xmp(
    invoice_number: str,
    profile: ConformanceProfile | str | None = ConformanceProfile.COMFORT,
    now: Optional[datetime] = None,
) -> str:
    """Erzeugt das XMP-Paket (PDF/A-3B mit Factur-X-Extension-Schema)."""

    profile = ConformanceProfile.parse(profile)
    properties = "\n".join(
        _XMP_PROPERTY.format(name=name, description=description)
        for name, description in _FX_PROPERTIES
    )
    return _XMP_TEMPLATE.format(
        fx_ns=FACTURX_XMP_NS,
        title=escape(clean_text(f"Facture {invoice_number}")),
        creator=escape(settings.FACTURX_CREATOR),
        producer=escape(settings.FACTURX_PRODUCER),
        subject=escape(DOCUMENT_SUBJECT),
        timestamp=_xmp_date(_utc(now)),
        properties=properties,
        file_name=ATTACHMENT_NAME,
        document_type=FACTURX_DOCUMENT_TYPE,
        version=FACTURX_VERSION,
        conformance_level=profile.conformance_level,
    )


def _open_source(pdf_bytes: bytes) -> pikepdf.Pdf:
    if not pdf_bytes:
        raise SourcePdfError("source PDF is empty")
    try:
        return pikepdf.open(io.BytesIO(pdf_bytes))
    except pikepdf.PasswordError as err:
        raise SourcePdfError("source PDF requires a user password", cause=err) from err
    except pikepdf.PdfError as err:
        raise SourcePdfError("source PDF could not be parsed", cause=err) from err


def _is_facturx_spec(spec: pikepdf.Object) -> bool:
    if not isinstance(spec, Dictionary):
        return False
    return any(str(spec.get(key, "")) == ATTACHMENT_NAME for key in (Name.F, Name.UF))


def _attach_xml(pdf: pikepdf.Pdf, xml_bytes: bytes, timestamp: str) -> Dictionary:
    embedded = pikepdf.Stream(pdf, xml_bytes)
    embedded[Name.Type] = Name.EmbeddedFile
    embedded[Name.Subtype] = Name("/" + ATTACHMENT_MIME)
    embedded[Name.Params] = Dictionary(
        Size=len(xml_bytes),
        CreationDate=String(timestamp),
        ModDate=String(timestamp),
    )

    filespec = pdf.make_indirect(
        Dictionary(
            Type=Name.Filespec,
            F=String(ATTACHMENT_NAME),
            UF=String(ATTACHMENT_NAME),
            Desc=String(ATTACHMENT_DESCRIPTION),
            EF=Dictionary(F=embedded, UF=embedded),
            AFRelationship=Name.Data,
        )
    )

    if Name.Names not in pdf.Root:
        pdf.Root[Name.Names] = pdf.make_indirect(Dictionary())
    names = pdf.Root[Name.Names]
    if Name.EmbeddedFiles in names:
        tree = NameTree(names[Name.EmbeddedFiles])
    else:
        tree = NameTree.new(pdf)
        names[Name.EmbeddedFiles] = tree.obj
    tree[ATTACHMENT_NAME] = filespec

    # ein vorheriges factur-x.xml darf nicht als zweite /AF-Datei zurückbleiben
    previous = pdf.Root.get(Name.AF, Array())
    pdf.Root[Name.AF] = Array([spec for spec in previous if not _is_facturx_spec(spec)] + [filespec])
    return filespec


def _set_metadata(
    pdf: pikepdf.Pdf,
    invoice_number: str,
    profile: ConformanceProfile,
    now: datetime,
) -> None:
    pdf_date = _pdf_date(now)
    info = pdf.docinfo
    info[Name.Title] = String(clean_text(f"Facture {invoice_number}"))
    info[Name.Subject] = String(DOCUMENT_SUBJECT)
    info[Name.Producer] = String(settings.FACTURX_PRODUCER)
    info[Name.Creator] = String(settings.FACTURX_CREATOR)
    info[Name.CreationDate] = String(pdf_date)
    info[Name.ModDate] = String(pdf_date)

    metadata = pikepdf.Stream(pdf, build_xmp(invoice_number, profile, now).encode("utf-8"))
    metadata[Name.Type] = Name.Metadata
    metadata[Name.Subtype] = Name.XML
    pdf.Root[Name.Metadata] = metadata


def embed_xml_in_pdf(
    pdf_bytes: bytes,
    xml: str | bytes,
    invoice_number: str,
    *,
    profile: ConformanceProfile | str | None = ConformanceProfile.COMFORT,
    now: Optional[datetime] = None,
) -> bytes:
    """Bettet die Factur-X-XML in das PDF ein und liefert PDF/A-3-Bytes.

    Raises:
        SourcePdfError: Quell-PDF leer, defekt oder mit Benutzerpasswort.
        EmbeddingError: Einbetten oder Serialisieren fehlgeschlagen.
    """

    profile = ConformanceProfile.parse(profile)
    timestamp = _utc(now)
    xml_bytes = xml.encode("utf-8") if isinstance(xml, str) else xml

    pdf = _open_source(pdf_bytes)
    try:
        try:
            _attach_xml(pdf, xml_bytes, _pdf_date(timestamp))
            _set_metadata(pdf, invoice_number, profile, timestamp)
        except (pikepdf.PdfError, KeyError, TypeError, ValueError) as err:
            raise EmbeddingError("could not attach Factur-X data", stage="embed", cause=err) from err

        buffer = io.BytesIO()
        try:
            pdf.save(
                buffer,
                object_stream_mode=pikepdf.ObjectStreamMode.disable,
                compress_streams=False,
                encryption=False,
                fix_metadata_version=False,
                min_version="1.7",
            )
        except (pikepdf.PdfError, OSError, ValueError) as err:
            raise EmbeddingError("could not serialize PDF", stage="serialize", cause=err) from err
    finally:
        pdf.close()

    output = buffer.getvalue()
    logger.info(
        "facturx_embedded",
        extra={
            "profile": profile.value,
            "xml_size": len(xml_bytes),
            "pdf_size": len(output),
        },
    )
    return output


def extract_xml_from_pdf(pdf_bytes: bytes) -> str:
    """Liefert die eingebettete Factur-X-XML (Name enthält ``factur-x``/``facturx``).

    Raises:
        ExtractionError: PDF nicht lesbar oder kein Factur-X-Anhang vorhanden.
    """

    try:
        pdf = pikepdf.open(io.BytesIO(pdf_bytes))
    except pikepdf.PdfError as err:
        raise ExtractionError(f"PDF could not be opened: {err}") from err

    with pdf:
        for name, spec in pdf.attachments.items():
            if any(marker in name.lower() for marker in _ATTACHMENT_MARKERS):
                data = spec.get_file().read_bytes()
                try:
                    return data.decode("utf-8")
                except UnicodeDecodeError as err:
                    raise ExtractionError(f"embedded {name} is not UTF-8: {err}") from err
    raise ExtractionError("Factur-X XML not found in PDF")
