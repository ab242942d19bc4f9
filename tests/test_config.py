import os
import unittest
from unittest import mock

from pydantic import ValidationError

from trusted_proxy.config import Settings, build_resolver, get_resolver, get_settings
from trusted_proxy.resolvers import CIDRWhitelist, FixedOffset


class SettingsTests(unittest.TestCase):
    def test_defaults_trust_private_ranges(self) -> None:
        settings = Settings(_env_file=None)
        self.assertEqual(settings.trusted_proxy_policy, 'cidr')
        self.assertIn('10.0.0.0/8', settings.trusted_proxy_cidrs)
        self.assertTrue(settings.trusted_proxy_rewrite_request)

    def test_cidrs_accept_comma_separated_and_json(self) -> None:
        self.assertEqual(
            Settings(_env_file=None, trusted_proxy_cidrs='10.0.0.0/8, ,192.168.0.0/16').trusted_proxy_cidrs,
            ['10.0.0.0/8', '192.168.0.0/16'],
        )
        self.assertEqual(
            Settings(_env_file=None, trusted_proxy_cidrs='["fd00::/8", " 172.16.0.0/12 "]').trusted_proxy_cidrs,
            ['fd00::/8', '172.16.0.0/12'],
        )

    def test_reads_environment(self) -> None:
        env = {
            'TRUSTED_PROXY_POLICY': 'offset',
            'TRUSTED_PROXY_OFFSET': '1',
            'TRUSTED_PROXY_CIDRS': '10.1.0.0/16,10.2.0.0/16',
        }
        with mock.patch.dict(os.environ, env):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.trusted_proxy_policy, 'offset')
        self.assertEqual(settings.trusted_proxy_offset, 1)
        self.assertEqual(settings.trusted_proxy_cidrs, ['10.1.0.0/16', '10.2.0.0/16'])

    def test_negative_offset_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            Settings(_env_file=None, trusted_proxy_offset=-1)


class BuildResolverTests(unittest.TestCase):
    def test_cidr_policy(self) -> None:
        resolver = build_resolver(Settings(_env_file=None, trusted_proxy_cidrs=['10.0.0.0/8', 'bogus']))
        self.assertIsInstance(resolver, CIDRWhitelist)
        self.assertEqual([str(network) for network in resolver.networks], ['10.0.0.0/8'])

    def test_offset_policy(self) -> None:
        resolver = build_resolver(Settings(_env_file=None, trusted_proxy_policy='offset', trusted_proxy_offset=2))
        self.assertIsInstance(resolver, FixedOffset)
        self.assertEqual(resolver.offset, 2)

    def test_get_resolver_is_built_once(self) -> None:
        get_resolver.cache_clear()
        with mock.patch('trusted_proxy.config.build_resolver', wraps=build_resolver) as spy:
            first = get_resolver()
            second = get_resolver()
        get_resolver.cache_clear()
        self.assertIs(first, second)
        spy.assert_called_once_with(get_settings())


if __name__ == '__main__':
    unittest.main()
