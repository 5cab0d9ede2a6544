# imail

Building blocks for a small mail service:

- **Headers** (`imail.header`): `read_header` reads a MIME header from a
  binary stream into a `Header` of `HeaderField`s. Each field keeps its raw
  bytes, folded lines included, so `bytes(header)` gives the fields back as
  they were read. `read_header_string` returns the raw header text instead.
- **Multipart bodies** (`imail.multipart`): `MultipartReader` steps through
  the parts of a MIME multipart body, by calling `next_part()` (which returns
  `None` after the final boundary) or by iterating. Each `Part` has a
  `header` and a `read(size)` method. A malformed body raises
  `MultipartError`.
- **Body structures** (`imail.structure`): `fetch_body_structure` works out
  the IMAP `BODYSTRUCTURE` of a message; `BodyStructure.format()` gives it as
  a field list and `to_string()` as the parenthesised IMAP form. `Address`
  and `Envelope` format as IMAP field lists too, and `decode_header` /
  `encode_header` handle RFC 2047 encoded words.
- **Template helpers** (`imail.templatefuncs`): date formatting for mail
  lists, path escaping, substrings and other small jobs for page templates.
- **Certificates** (`imail.cert`): make a self-signed X.509 certificate for a
  TLS server, from Python or with the `imail-cert` command.
- **Configuration** (`imail.conf`): find the work, custom and home
  directories, and check which user the service runs as.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Reading a message's structure

```python
import io

from imail.header import read_header
from imail.structure import fetch_body_structure

raw = (
    b"Content-Type: multipart/mixed; boundary=outer\r\n"
    b"Subject: Hello\r\n"
    b"\r\n"
    b"--outer\r\n"
    b"Content-Type: text/plain\r\n"
    b"\r\n"
    b"Hi there.\r\n"
    b"--outer--\r\n"
)

stream = io.BytesIO(raw)
header = read_header(stream)
print(header.get("subject"))          # "Hello"; keys are matched case-insensitively

structure = fetch_body_structure(header, stream, True)
print(structure.mime_type, structure.mime_sub_type)   # multipart mixed
print(structure.to_string())          # the IMAP parenthesised form
```

`read_header` raises `ValueError` for a malformed header and `EOFError` when
the input ends before the blank line that closes it.

## Template helpers

```python
from imail.templatefuncs import escape_pound, new_line_to_br, sub_str

escape_pound("a b#c?d%")     # "a%20b%23c%3Fd%25"
new_line_to_br("one\ntwo")   # "one<br>two"
sub_str("hello", 1, 3)       # "ell"
```

`date_fmt_mail(moment, now, tz, yesterday)` shows the time of day (`HH:MM`)
for a message from today, the word passed as `yesterday` for one from the
day before, and the date (`YYYY-MM-DD`) for anything older. `tz` may be a
zone name, a `tzinfo`, or `"Local"` for the machine's zone; it defaults to
UTC. `date_int64_fmt_mail` does the same for a Unix timestamp.

## Making a self-signed certificate

```
imail-cert --host example.com,127.0.0.1
imail-cert --host example.com --ecdsa-curve P256 --ca
```

This writes `cert.pem` and `key.pem` (mode 0600) to the current directory
and overwrites any files already there. The key is RSA (2048 bits unless
`--rsa-bits` says otherwise), or ECDSA when `--ecdsa-curve` is `P224`,
`P256`, `P384` or `P521`. `--start-date` takes a date such as
`Jan 1 15:04:05 2011` (read as UTC); when it is not given, the certificate
is valid from now. `--duration` takes a length such as `8760h` and defaults
to 365 days. Each host is added as an IP address if it parses as one, and as
a DNS name otherwise. `--host` is required.

From Python, call `generate_certificate(...)` to get a `CertificateBundle`,
then `write_certificate(bundle, directory)` to write it out.

## What this package does not do

It has no mail server: nothing here listens for SMTP, POP3 or IMAP, sends
mail, or serves a web interface. It stores no mail, users or domains, does
not read a configuration file (`imail.conf` holds the `DatabaseOptions` and
`I18nConf` settings types but does not load them), and does not make DKIM
keys or check a domain's DNS records. Apart from `imail-cert`, it offers no
command.