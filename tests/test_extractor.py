import unittest
from ipaddress import IPv6Address, ip_address

from starlette.datastructures import Headers

from trusted_proxy.errors import UnknownRemoteAddrError
from trusted_proxy.extractor import extract_forwarded_for, parse_remote_address


def _headers(*items: tuple[str, str]) -> Headers:
    return Headers(raw=[(key.lower().encode('latin-1'), value.encode('latin-1')) for key, value in items])


class ExtractForwardedForTests(unittest.TestCase):
    def test_missing_header_yields_empty_chain(self) -> None:
        self.assertEqual(extract_forwarded_for(_headers(('host', 'example.com'))), [])

    def test_single_header_keeps_declared_order(self) -> None:
        result = extract_forwarded_for(_headers(('x-forwarded-for', '203.0.113.10, 198.51.100.7,10.0.0.2')))
        self.assertEqual(result, [ip_address('203.0.113.10'), ip_address('198.51.100.7'), ip_address('10.0.0.2')])

    def test_repeated_headers_are_concatenated(self) -> None:
        result = extract_forwarded_for(
            _headers(
                ('x-forwarded-for', '203.0.113.10'),
                ('X-Forwarded-For', ' 2001:db8::1 , 10.0.0.2'),
            )
        )
        self.assertEqual(result, [ip_address('203.0.113.10'), ip_address('2001:db8::1'), ip_address('10.0.0.2')])

    def test_malformed_tokens_are_dropped(self) -> None:
        result = extract_forwarded_for(_headers(('x-forwarded-for', 'unknown, 203.0.113.10, , 999.1.1.1, 10.0.0.2:80')))
        self.assertEqual(result, [ip_address('203.0.113.10')])

    def test_ipv4_mapped_addresses_are_not_normalized(self) -> None:
        result = extract_forwarded_for(_headers(('x-forwarded-for', '::ffff:203.0.113.10')))
        self.assertEqual(len(result), 1)
        self.assertIsInstance(result[0], IPv6Address)


class ParseRemoteAddressTests(unittest.TestCase):
    def test_bare_addresses(self) -> None:
        self.assertEqual(parse_remote_address('10.0.0.1'), ip_address('10.0.0.1'))
        self.assertEqual(parse_remote_address('::1'), ip_address('::1'))

    def test_host_port_forms(self) -> None:
        self.assertEqual(parse_remote_address('10.0.0.1:51000'), ip_address('10.0.0.1'))
        self.assertEqual(parse_remote_address('[2001:db8::1]:443'), ip_address('2001:db8::1'))

    def test_invalid_values_raise(self) -> None:
        for value in (None, '', '   ', 'testclient', 'localhost:8000', '[::1]', '10.0.0.1:http', '[bogus]:80'):
            with self.subTest(value=value):
                with self.assertRaises(UnknownRemoteAddrError):
                    parse_remote_address(value)


if __name__ == '__main__':
    unittest.main()
