"""
Tests for the generic preparation pipeline, one scenario per operation
"""

import base64
import hashlib
import json
import unittest
import sys
import os

import httpx

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))
sys.path.insert(0, os.path.dirname(__file__))

from helpers import (
    OTHER,
    PNG_BYTES,
    USER,
    FakeChainClient,
    aeneid_network,
    cli_payload,
    collection_payload,
    creator,
    derivative_payload,
    dispute_payload,
    ip_metadata,
    license_payload,
    register_payload,
    royalty_payload,
)
from integrations import story_abi
from integrations.ipfs import MockContentStore, PinataContentStore
from services.hashing import hash_content, hash_metadata
from services.pipeline import OPERATIONS, PreparationPipeline
from utils.errors import ConfigurationError, ContentStoreError, InsufficientFundsError, ValidationError


class FailingStore(MockContentStore):
    async def pin_json(self, content, name):
        raise ContentStoreError("Upload of metadata failed")


class PipelineTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.network = aeneid_network()
        self.chain = FakeChainClient()
        self.store = MockContentStore()
        self.pipeline = PreparationPipeline(
            network=self.network,
            content_store=self.store,
            chain_client=self.chain,
            license_fee_per_token_wei=10 ** 18,
        )

    def assertEnvelope(self, body):
        self.assertTrue(body["success"])
        self.assertEqual(set(body), {"success", "transaction", "metadata", "uploadedFiles", "additionalData"})
        self.assertTrue(body["transaction"]["data"].startswith("0x"))
        self.assertEqual(set(body["transaction"]), {"to", "data", "value", "gasEstimate"})


class TestRegisterPipeline(PipelineTestCase):

    async def test_register(self):
        body = await self.pipeline.run("register", register_payload(), request_id="req_test")
        self.assertEnvelope(body)

        tx = body["transaction"]
        self.assertEqual(tx["to"], self.network.default_spg_nft_contract)
        self.assertEqual(tx["value"], "0")
        self.assertEqual(tx["gasEstimate"], "120000")
        selector = story_abi.selector(story_abi.MINT_AND_REGISTER_IP_AND_ATTACH_PIL_TERMS).hex()
        self.assertTrue(tx["data"].startswith("0x" + selector))

        metadata = body["metadata"]
        ip_doc = self.store.pinned[metadata["ipfsHash"]]
        nft_doc = self.store.pinned[metadata["nftIpfsHash"]]
        self.assertEqual(metadata["ipHash"], hash_metadata(ip_doc))
        self.assertEqual(metadata["nftHash"], hash_metadata(nft_doc))
        self.assertEqual(ip_doc["title"], "My Artwork")
        self.assertEqual(ip_doc["creators"][0]["contributionPercent"], 100)
        self.assertEqual(nft_doc["attributes"], [])

        additional = body["additionalData"]
        self.assertEqual(additional["ipMetadataURI"], self.store.get_url(metadata["ipfsHash"]))
        self.assertEqual(additional["spgNftContract"], self.network.default_spg_nft_contract)
        self.assertEqual(additional["licenseTerms"]["flavor"], "commercial_remix")
        self.assertEqual(body["uploadedFiles"], [])

    async def test_register_hash_independent_of_key_order(self):
        first = await self.pipeline.run("register", register_payload())
        reordered = register_payload()
        reordered["ipMetadata"] = dict(reversed(list(reordered["ipMetadata"].items())))
        second = await self.pipeline.run("register", reordered)
        self.assertEqual(first["metadata"]["ipHash"], second["metadata"]["ipHash"])

    async def test_register_with_media_file(self):
        files = [{
            "data": base64.b64encode(PNG_BYTES).decode(),
            "filename": "art.png",
            "contentType": "image/png",
            "purpose": "media",
        }]
        body = await self.pipeline.run("register", register_payload(files=files))

        uploaded = body["uploadedFiles"]
        self.assertEqual(len(uploaded), 1)
        self.assertEqual(uploaded[0]["filename"], "art.png")
        self.assertEqual(uploaded[0]["contentHash"], hash_content(PNG_BYTES))
        ip_doc = self.store.pinned[body["metadata"]["ipfsHash"]]
        nft_doc = self.store.pinned[body["metadata"]["nftIpfsHash"]]
        self.assertEqual(ip_doc["image"], uploaded[0]["url"])
        self.assertEqual(ip_doc["mediaUrl"], uploaded[0]["url"])
        self.assertEqual(nft_doc["image"], uploaded[0]["url"])

    async def test_pinata_receives_exactly_the_hashed_bytes(self):
        requests = []

        def pinata(request):
            requests.append(request)
            return httpx.Response(200, json={"IpfsHash": f"QmPinned{len(requests)}"})

        store = PinataContentStore(jwt="jwt", api_url="https://pinata.test", gateway_url="https://gw.test/ipfs",
                                   transport=httpx.MockTransport(pinata))
        pipeline = PreparationPipeline(self.network, store, self.chain)
        metadata = ip_metadata(creators=[creator(percent=60.0), creator(address=OTHER, percent=40, name="Zoë")])
        body = await pipeline.run("register", register_payload(ipMetadata=metadata))

        sent = {}
        for request in requests:
            payload = json.loads(request.content)
            stored = json.dumps(payload["pinataContent"], separators=(",", ":"), ensure_ascii=False)
            sent[payload["pinataMetadata"]["name"]] = hashlib.sha256(stored.encode("utf-8")).hexdigest()
        self.assertEqual(sent["ip-metadata.json"], body["metadata"]["ipHash"])
        self.assertEqual(sent["nft-metadata.json"], body["metadata"]["nftHash"])

    async def test_validation_happens_before_any_upload(self):
        with self.assertRaises(ValidationError):
            await self.pipeline.run("register", register_payload(userAddress="0x123"))
        self.assertEqual(self.store.pinned, {})
        self.assertEqual(self.chain.estimates, [])

    async def test_upload_failure_propagates(self):
        pipeline = PreparationPipeline(self.network, FailingStore(), self.chain)
        with self.assertRaises(ContentStoreError):
            await pipeline.run("register", register_payload())
        self.assertEqual(self.chain.estimates, [])

    async def test_missing_contract_is_configuration_error(self):
        network = aeneid_network(SPG_NFT_CONTRACT_ADDRESS="")
        pipeline = PreparationPipeline(network, self.store, self.chain)
        with self.assertRaises(ConfigurationError):
            await pipeline.run("register", register_payload())

    async def test_insufficient_funds(self):
        pipeline = PreparationPipeline(self.network, self.store, FakeChainClient(balance=0))
        with self.assertRaises(InsufficientFundsError):
            await pipeline.run("register", register_payload())

    async def test_unknown_operation(self):
        with self.assertRaises(ValueError):
            await self.pipeline.run("teleport", {})


class TestOperationPipelines(PipelineTestCase):

    async def test_derivative_reuses_ip_document_without_nft(self):
        body = await self.pipeline.run("derivative", derivative_payload())
        self.assertEnvelope(body)
        metadata = body["metadata"]
        self.assertEqual(metadata["nftIpfsHash"], metadata["ipfsHash"])
        self.assertEqual(metadata["nftHash"], metadata["ipHash"])
        self.assertEqual(body["additionalData"]["parentIpIds"], derivative_payload()["parentIpIds"])

    async def test_license(self):
        body = await self.pipeline.run("license", license_payload(amount=2))
        self.assertEnvelope(body)
        self.assertEqual(body["transaction"]["to"], self.network.licensing_module)
        self.assertEqual(body["transaction"]["value"], str(2 * 10 ** 18))
        self.assertEqual(body["metadata"],
                         {"ipfsHash": None, "ipHash": None, "nftIpfsHash": None, "nftHash": None})
        self.assertEqual(body["additionalData"]["feeToken"], "WIP")
        self.assertEqual(self.store.pinned, {})

    async def test_royalty_operations(self):
        for operation in ("pay", "claim", "transfer"):
            with self.subTest(operation=operation):
                body = await self.pipeline.run("royalty", royalty_payload(operation))
                self.assertEnvelope(body)
                self.assertEqual(body["additionalData"]["operation"], operation)

    async def test_collection_reports_gas(self):
        body = await self.pipeline.run("collection", collection_payload())
        self.assertEnvelope(body)
        self.assertEqual(body["transaction"]["to"], self.network.registration_workflows)
        self.assertEqual(body["additionalData"]["estimatedGas"], body["transaction"]["gasEstimate"])

    async def test_dispute_pins_evidence(self):
        body = await self.pipeline.run("dispute", dispute_payload())
        self.assertEnvelope(body)
        self.assertEqual(body["transaction"]["value"], "1000000000000000000")
        evidence = self.store.pinned[body["metadata"]["ipfsHash"]]
        self.assertEqual(evidence["targetTag"], "PLAGIARISM")
        self.assertEqual(evidence["submittedBy"], USER)
        self.assertEqual(body["metadata"]["ipHash"], hash_metadata(evidence))
        self.assertEqual(body["additionalData"]["evidenceHash"], body["metadata"]["ipfsHash"])
        self.assertEqual(body["additionalData"]["estimatedGas"], body["transaction"]["gasEstimate"])

    async def test_estimation_failure_uses_operation_default(self):
        pipeline = PreparationPipeline(self.network, self.store, FakeChainClient(estimate_error=ValueError("revert")))
        body = await pipeline.run("dispute", dispute_payload())
        self.assertEqual(body["transaction"]["gasEstimate"], str(OPERATIONS["dispute"].default_gas))


class TestCliPipeline(PipelineTestCase):

    async def test_cli_mint_generates_metadata(self):
        body = await self.pipeline.run("cli_mint", cli_payload(), request_id="req_cli")
        self.assertEnvelope(body)

        uploaded = body["uploadedFiles"][0]
        self.assertEqual(uploaded["contentType"], "image/png")
        self.assertEqual(self.store.pinned[uploaded["contentId"]], PNG_BYTES)

        cli = body["additionalData"]["cli"]
        self.assertEqual(cli["requestId"], "req_cli")
        self.assertEqual(cli["contentHash"], hash_content(PNG_BYTES))
        self.assertEqual(cli["fileSize"], len(PNG_BYTES))
        self.assertEqual(cli["originalPath"], "/home/alice/art/my_cool-photo.png")
        self.assertTrue(cli["autoGenerated"])
        self.assertIn("started", cli["timestamps"])

        generated = body["additionalData"]["generatedMetadata"]
        self.assertEqual(generated["ip"]["title"], "My Cool Photo")
        self.assertEqual(generated["ip"]["image"], uploaded["url"])
        traits = {a["trait_type"]: a["value"] for a in generated["nft"]["attributes"]}
        self.assertEqual(traits["IPFS Hash"], uploaded["contentId"])
        self.assertEqual(traits["File Extension"], "PNG")

        ip_doc = self.store.pinned[body["metadata"]["ipfsHash"]]
        self.assertEqual(body["metadata"]["ipHash"], hash_metadata(ip_doc))

    async def test_cli_base64_round_trip(self):
        notes = "Field notes, día 1 ☃\n".encode("utf-8")
        payload = cli_payload(fileData=base64.b64encode(notes).decode(), filename="notes.txt",
                              filePath="/tmp/notes.txt", contentType="text/plain")
        body = await self.pipeline.run("cli_mint", payload)

        uploaded = body["uploadedFiles"][0]
        self.assertEqual(self.store.pinned[uploaded["contentId"]], notes)
        self.assertEqual(uploaded["size"], len(notes))
        self.assertEqual(body["additionalData"]["cli"]["contentHash"], hash_content(notes))

    async def test_cli_title_override(self):
        body = await self.pipeline.run("cli_mint", cli_payload(title="Sunset", description="Evening sky"))
        generated = body["additionalData"]["generatedMetadata"]
        self.assertEqual(generated["ip"]["title"], "Sunset")
        self.assertEqual(generated["nft"]["name"], "Sunset")
        self.assertEqual(generated["nft"]["description"], "Evening sky")

    async def test_cli_without_generation(self):
        body = await self.pipeline.run("cli_mint", cli_payload(generateMetadata=False))
        generated = body["additionalData"]["generatedMetadata"]
        self.assertEqual(generated["ip"]["title"], "my_cool-photo.png")
        self.assertEqual(generated["ip"]["description"], "File uploaded via CLI: my_cool-photo.png")
        self.assertFalse(body["additionalData"]["cli"]["autoGenerated"])

    async def test_cli_content_hash_verified(self):
        body = await self.pipeline.run("cli_mint", cli_payload(contentHash=hash_content(PNG_BYTES)))
        self.assertTrue(body["success"])
        with self.assertRaises(ValidationError) as ctx:
            await self.pipeline.run("cli_mint", cli_payload(contentHash="00" * 32))
        self.assertIn("contentHash", ctx.exception.message)

    async def test_cli_rejects_mismatched_type(self):
        with self.assertRaises(ValidationError) as ctx:
            await self.pipeline.run("cli_mint", cli_payload(contentType="application/pdf"))
        self.assertIn("File validation failed", ctx.exception.message)
        self.assertEqual(self.store.pinned, {})


class TestDescriptors(unittest.TestCase):

    def test_every_operation_documented(self):
        self.assertEqual(set(OPERATIONS), {"register", "derivative", "license", "royalty", "collection",
                                           "dispute", "cli_mint"})
        for name, descriptor in OPERATIONS.items():
            with self.subTest(operation=name):
                docs = descriptor.describe()
                self.assertEqual(docs["method"], "POST")
                self.assertTrue(docs["endpoint"].startswith("/api/"))
                self.assertIn("description", docs)

    def test_content_stage_only_where_needed(self):
        staged = {name for name, d in OPERATIONS.items() if d.requires_metadata}
        self.assertEqual(staged, {"register", "derivative", "dispute", "cli_mint"})


if __name__ == '__main__':
    unittest.main()
