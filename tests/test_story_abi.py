"""
Unit tests for ABI fragments and call encoding
"""

import unittest
import sys
import os

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from integrations import story_abi

RECIPIENT = "0x" + "ab" * 20


class TestSignatures(unittest.TestCase):

    def test_flat_signature(self):
        self.assertEqual(
            story_abi.function_signature(story_abi.MINT_LICENSE_TOKENS),
            "mintLicenseTokens(address,address,uint256,uint256,address,bytes,uint256,uint32)",
        )

    def test_tuple_signature(self):
        signature = story_abi.function_signature(story_abi.MINT_AND_REGISTER_IP_AND_ATTACH_PIL_TERMS)
        self.assertTrue(signature.startswith(
            "mintAndRegisterIpAndAttachPILTerms(address,address,(string,bytes32,string,bytes32),(("
        ))
        self.assertTrue(signature.endswith(")[],bool)"))

    def test_known_selector(self):
        self.assertEqual(story_abi.selector(story_abi.ERC20_TRANSFER), bytes.fromhex("a9059cbb"))

    def test_pil_terms_field_count(self):
        self.assertEqual(len(story_abi.PIL_TERMS), 17)
        self.assertEqual(len(story_abi.LICENSING_CONFIG), 8)


class TestViews(unittest.TestCase):

    def test_erc721_selectors(self):
        self.assertEqual(story_abi.selector(story_abi.ERC721_BALANCE_OF), bytes.fromhex("70a08231"))
        self.assertEqual(story_abi.selector(story_abi.ERC721_OWNER_OF), bytes.fromhex("6352211e"))
        self.assertEqual(story_abi.selector(story_abi.ERC721_TOKEN_URI), bytes.fromhex("c87b56dd"))
        self.assertEqual(story_abi.selector(story_abi.ERC721_TOTAL_SUPPLY), bytes.fromhex("18160ddd"))

    def test_registry_signatures(self):
        self.assertEqual(story_abi.function_signature(story_abi.IP_ASSET_ID), "ipId(uint256,address,uint256)")
        self.assertEqual(story_abi.function_signature(story_abi.IS_REGISTERED), "isRegistered(address)")

    def test_decode_single_result(self):
        self.assertEqual(story_abi.decode_result(story_abi.ERC721_BALANCE_OF, encode(["uint256"], [3])), 3)
        uri = story_abi.decode_result(story_abi.ERC721_TOKEN_URI, encode(["string"], ["ipfs://QmToken"]))
        self.assertEqual(uri, "ipfs://QmToken")
        owner = story_abi.decode_result(story_abi.ERC721_OWNER_OF, encode(["address"], [RECIPIENT]))
        self.assertEqual(owner.lower(), RECIPIENT)

    def test_empty_return_data(self):
        with self.assertRaises(DecodingError):
            story_abi.decode_result(story_abi.ERC721_BALANCE_OF, b"")


class TestEncoding(unittest.TestCase):

    def test_encode_transfer(self):
        data = story_abi.encode_call(story_abi.ERC20_TRANSFER, (RECIPIENT, 1))
        self.assertEqual(
            data,
            "0xa9059cbb" + "0" * 24 + "ab" * 20 + "0" * 63 + "1",
        )

    def test_round_trip_through_decode(self):
        data = story_abi.encode_call(story_abi.PAY_ROYALTY_ON_BEHALF, (RECIPIENT, "0x" + "0" * 40, RECIPIENT, 500))
        types = [story_abi.abi_type(p) for p in story_abi.PAY_ROYALTY_ON_BEHALF["inputs"]]
        receiver, payer, token, amount = decode(types, bytes.fromhex(data[10:]))
        self.assertEqual(receiver.lower(), RECIPIENT)
        self.assertEqual(payer, "0x" + "0" * 40)
        self.assertEqual(amount, 500)

    def test_argument_count_checked(self):
        with self.assertRaises(ValueError):
            story_abi.encode_call(story_abi.ERC20_TRANSFER, (RECIPIENT,))


if __name__ == '__main__':
    unittest.main()
