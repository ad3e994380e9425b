"""
HTTP tests for the FastAPI app: routes, envelopes, admission filters
"""

import unittest
import sys
import os
from unittest.mock import patch

from fastapi.testclient import TestClient

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))
sys.path.insert(0, os.path.dirname(__file__))

from helpers import (
    OTHER,
    USER,
    Collection,
    FakeChainClient,
    cli_payload,
    derived_ip_id,
    ip_metadata,
    license_payload,
    make_pipeline,
    register_payload,
)
from app import create_app
from config import config
from utils.rate_limit import limiter


class ExplodingChainClient(FakeChainClient):
    async def get_balance(self, address):
        raise RuntimeError("database password is hunter2")


class APITestCase(unittest.TestCase):

    def setUp(self):
        limiter.reset()
        self.chain = FakeChainClient()
        self.pipeline = make_pipeline(chain=self.chain)
        self.client = TestClient(create_app(pipeline=self.pipeline))

    def assertError(self, response, status, code):
        self.assertEqual(response.status_code, status, response.text)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["code"], code)
        self.assertEqual(body["error"]["details"]["requestId"], response.headers["X-Request-ID"])
        return body["error"]


class TestHealthRoutes(APITestCase):

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["status"], "healthy")
        self.assertEqual(body["config"]["network"], "aeneid")
        self.assertEqual(body["config"]["chainId"], 1315)
        self.assertEqual(body["config"]["contentStoreMode"], "mock")
        self.assertTrue(body["config"]["contentStoreConfigured"])

    def test_security_headers_and_request_id(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.headers["X-Frame-Options"], "DENY")
        self.assertEqual(response.headers["X-Content-Type-Options"], "nosniff")
        self.assertTrue(response.headers["X-Request-ID"].startswith("req_"))

    def test_network_status(self):
        body = self.client.get("/api/network/status").json()
        self.assertEqual(body["chainId"], 1315)
        self.assertTrue(body["chainIdMatches"])
        self.assertEqual(body["blockNumber"], 123)
        self.assertEqual(body["rpcUrl"], "https://rpc.test")

    def test_network_status_rpc_down(self):
        client = TestClient(create_app(pipeline=make_pipeline(chain=FakeChainClient(rpc_down=True))))
        error = self.assertError(client.get("/api/network/status"), 503, "NETWORK_ERROR")
        self.assertTrue(error["retryable"])


class TestPrepareRoutes(APITestCase):

    def test_prepare_mint(self):
        response = self.client.post("/api/prepare-mint", json=register_payload())
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["transaction"]["to"], self.pipeline.network.default_spg_nft_contract)
        self.assertIn("ipMetadataURI", body["additionalData"])

    def test_prepare_license(self):
        body = self.client.post("/api/prepare-license", json=license_payload(amount=3)).json()
        self.assertEqual(body["transaction"]["value"], str(3 * 10 ** 18))

    def test_validation_error(self):
        response = self.client.post("/api/prepare-mint", json=register_payload(userAddress="0x123"))
        error = self.assertError(response, 400, "VALIDATION_ERROR")
        self.assertIn("userAddress: Invalid Ethereum address format", error["message"])
        self.assertFalse(error["retryable"])

    def test_malformed_json(self):
        response = self.client.post(
            "/api/prepare-mint", content="{not json", headers={"Content-Type": "application/json"}
        )
        error = self.assertError(response, 400, "VALIDATION_ERROR")
        self.assertEqual(error["message"], "Request body must be valid JSON")

    def test_insufficient_funds(self):
        client = TestClient(create_app(pipeline=make_pipeline(chain=FakeChainClient(balance=0))))
        error = self.assertError(client.post("/api/prepare-license", json=license_payload()),
                                 400, "INSUFFICIENT_FUNDS")
        self.assertIn("faucetUrls", error["details"])
        self.assertFalse(error["retryable"])

    def test_unexpected_error_is_opaque(self):
        client = TestClient(create_app(pipeline=make_pipeline(chain=ExplodingChainClient())))
        error = self.assertError(client.post("/api/prepare-license", json=license_payload()),
                                 500, "INTERNAL_ERROR")
        self.assertNotIn("hunter2", str(error))

    def test_usage_docs(self):
        body = self.client.get("/api/prepare-license").json()
        self.assertTrue(body["success"])
        self.assertEqual(body["endpoint"], "/api/prepare-license")
        self.assertEqual(body["method"], "POST")
        self.assertIn("licensorIpId", body["requiredFields"])

    def test_options(self):
        self.assertEqual(self.client.options("/api/prepare-dispute").status_code, 200)
        self.assertEqual(self.client.options("/api/cli/mint-file").status_code, 200)

    def test_cors_preflight(self):
        response = self.client.options(
            "/api/prepare-mint",
            headers={"Origin": "https://app.example", "Access-Control-Request-Method": "POST"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("access-control-allow-origin", response.headers)

    def test_cli_mint_file(self):
        response = self.client.post("/api/cli/mint-file", json=cli_payload())
        self.assertEqual(response.status_code, 200, response.text)
        cli = response.json()["additionalData"]["cli"]
        self.assertEqual(cli["requestId"], response.headers["X-Request-ID"])

    def test_cli_usage_docs(self):
        body = self.client.get("/api/cli/mint-file").json()
        self.assertEqual(body["endpoint"], "/api/cli/mint-file")


class TestLicenseRemixerRoutes(APITestCase):

    def test_templates(self):
        body = self.client.get("/api/license-remixer?action=templates").json()
        self.assertTrue(body["success"])
        self.assertIn("commercial-remix", body["templates"])

    def test_one_template(self):
        body = self.client.get("/api/license-remixer?template=non-commercial").json()
        self.assertFalse(body["template"]["parameters"]["commercialUse"])
        self.assertIn("customizationTips", body)

    def test_unknown_template(self):
        response = self.client.get("/api/license-remixer?template=public-domain")
        error = self.assertError(response, 400, "VALIDATION_ERROR")
        self.assertIn("commercial-remix", error["details"]["available"])

    def test_usage_docs(self):
        body = self.client.get("/api/license-remixer").json()
        self.assertEqual(body["endpoint"], "/api/license-remixer")
        self.assertIn("creatorAddress", body["requiredFields"])

    def test_remix(self):
        response = self.client.post("/api/license-remixer", json={
            "creatorAddress": USER, "licenseType": "commercial-remix", "format": "both",
        })
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertIn(body["ipfs"]["hash"], self.pipeline.content_store.pinned)
        self.assertEqual(body["licenseTerms"]["uri"], body["ipfs"]["uri"])
        self.assertTrue(body["markdown"].startswith("# Commercial Remix License Terms"))

        # the terms feed straight into a registration
        mint = self.client.post("/api/prepare-mint", json=register_payload(licenseTerms=body["licenseTerms"]))
        self.assertEqual(mint.status_code, 200, mint.text)

    def test_remix_validation(self):
        response = self.client.post("/api/license-remixer", json={"creatorAddress": USER, "licenseType": "custom"})
        error = self.assertError(response, 400, "VALIDATION_ERROR")
        self.assertIn("commercialUse is required for custom licenses", error["message"])
        self.assertEqual(self.pipeline.content_store.pinned, {})

    def test_options(self):
        self.assertEqual(self.client.options("/api/license-remixer").status_code, 200)


class TestAssetRoutes(APITestCase):

    def setUp(self):
        super().setUp()
        self.contract = "0x" + "a1" * 20
        chain = FakeChainClient(collections={
            self.contract: Collection(owners={1: USER, 2: USER, 3: USER}, supply=3),
        })
        self.client = TestClient(create_app(pipeline=make_pipeline(chain=chain)))

    def test_get_nfts(self):
        response = self.client.get(f"/api/get-nfts?address={USER}&contracts={self.contract}&limit=2")
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual([n["tokenId"] for n in body["nfts"]], ["1", "2"])
        self.assertEqual(body["pagination"], {"limit": 2, "offset": 0, "total": 3, "hasMore": True})

    def test_post_get_assets(self):
        response = self.client.post("/api/get-assets", json={
            "address": USER, "contracts": [self.contract], "offset": 1,
        })
        self.assertEqual(response.status_code, 200, response.text)
        assets = response.json()["assets"]
        self.assertEqual([a["tokenId"] for a in assets], ["2", "3"])
        self.assertEqual(assets[0]["ipId"], derived_ip_id(self.contract, 2))

    def test_address_validation(self):
        error = self.assertError(self.client.get("/api/get-assets?address=0x123"), 400, "VALIDATION_ERROR")
        self.assertIn("address: Invalid Ethereum address format", error["message"])
        self.assertError(self.client.get("/api/get-nfts"), 400, "VALIDATION_ERROR")

    def test_bad_pagination(self):
        for params in ("limit=abc", "limit=500", "offset=-1", "limit=%D9%A1"):
            with self.subTest(params=params):
                response = self.client.get(f"/api/get-nfts?address={USER}&contracts={self.contract}&{params}")
                self.assertError(response, 400, "VALIDATION_ERROR")

    def test_not_a_contract(self):
        response = self.client.get(f"/api/get-nfts?address={USER}&contracts={OTHER}")
        error = self.assertError(response, 400, "VALIDATION_ERROR")
        self.assertIn("did not answer balanceOf", error["message"])

    def test_options(self):
        self.assertEqual(self.client.options("/api/get-assets").status_code, 200)
        self.assertEqual(self.client.options("/api/get-nfts").status_code, 200)


class TestErrorLogging(APITestCase):

    def test_client_error_logged_with_request_id(self):
        payload = license_payload()
        del payload["licensorIpId"]
        with self.assertLogs("middleware.error_handler", level="WARNING") as logs:
            response = self.client.post("/api/prepare-license", json=payload)
        self.assertEqual(response.status_code, 400)
        request_id = response.headers["X-Request-ID"]
        self.assertEqual(len(logs.records), 1)
        self.assertEqual(logs.records[0].levelname, "WARNING")
        self.assertIn(f"[{request_id}]", logs.output[0])
        self.assertIn("VALIDATION_ERROR (400) in POST /api/prepare-license", logs.output[0])

    def test_server_error_logged_with_request_id(self):
        client = TestClient(create_app(pipeline=make_pipeline(chain=ExplodingChainClient())))
        with self.assertLogs("middleware.error_handler", level="ERROR") as logs:
            response = client.post("/api/prepare-license", json=license_payload())
        self.assertEqual(response.status_code, 500)
        self.assertIn(f"[{response.headers['X-Request-ID']}]", logs.output[0])
        self.assertIn("INTERNAL_ERROR (500)", logs.output[0])

    def test_rejected_body_logged_with_request_id(self):
        with patch.object(config, "MAX_REQUEST_BYTES", 64):
            client = TestClient(create_app(pipeline=self.pipeline))
        with self.assertLogs("middleware.error_handler", level="WARNING") as logs:
            response = client.post("/api/prepare-mint", json=register_payload())
        self.assertEqual(response.status_code, 413)
        self.assertIn(f"[{response.headers['X-Request-ID']}]", logs.output[0])
        self.assertIn("limit 64", logs.output[0])


class TestAdmissionFilters(APITestCase):

    def test_wrong_content_type(self):
        response = self.client.post("/api/prepare-mint", content="hello", headers={"Content-Type": "text/plain"})
        self.assertError(response, 400, "INVALID_CONTENT_TYPE")

    def test_request_too_large(self):
        with patch.object(config, "MAX_REQUEST_BYTES", 64):
            client = TestClient(create_app(pipeline=self.pipeline))
        response = client.post("/api/prepare-mint", json=register_payload())
        self.assertError(response, 413, "REQUEST_TOO_LARGE")
        self.assertEqual(response.headers["X-Frame-Options"], "DENY")

    def test_script_injection_rejected(self):
        payload = register_payload(ipMetadata=ip_metadata(title="<script>alert(1)</script>"))
        self.assertError(self.client.post("/api/prepare-mint", json=payload), 400, "SECURITY_VIOLATION")
        self.assertEqual(self.chain.estimates, [])

    def test_strings_trimmed(self):
        payload = register_payload(ipMetadata=ip_metadata(title="  Padded title \x00 "))
        response = self.client.post("/api/prepare-mint", json=payload)
        self.assertEqual(response.status_code, 200, response.text)
        ip_doc = self.pipeline.content_store.pinned[response.json()["metadata"]["ipfsHash"]]
        self.assertEqual(ip_doc["title"], "Padded title")

    @unittest.skipUnless(config.RATE_LIMIT_ENABLED and config.STANDARD_RATE_LIMIT == "10/minute",
                         "default rate limits required")
    def test_rate_limit(self):
        for _ in range(10):
            self.assertEqual(self.client.post("/api/prepare-license", json=license_payload()).status_code, 200)

        response = self.client.post("/api/prepare-license", json=license_payload())
        error = self.assertError(response, 429, "RATE_LIMIT_EXCEEDED")
        self.assertTrue(error["retryable"])

        # limits are per endpoint
        self.assertEqual(self.client.post("/api/prepare-mint", json=register_payload()).status_code, 200)


if __name__ == '__main__':
    unittest.main()
