"""Tests for Cloudflare DNS provider."""

from unittest.mock import MagicMock, patch

import pytest

from acme_orchestrator.dns.cloudflare import CloudflareDnsProvider

_BASE = "https://api.cloudflare.com/client/v4"


def _api_response(result):
    return MagicMock(
        status_code=200,
        json=MagicMock(return_value={"success": True, "result": result}),
        raise_for_status=MagicMock(),
    )


class TestCloudflareGetZoneId:
    def test_returns_zone_id_from_api(self):
        mock_client = MagicMock()
        mock_client.get.return_value = _api_response([{"id": "zone-abc-123"}])
        provider = CloudflareDnsProvider(api_token="tok", _http_client=mock_client)

        zone_id = provider._get_zone_id("_acme-challenge.example.com")

        assert zone_id == "zone-abc-123"
        mock_client.get.assert_called_once_with(
            f"{_BASE}/zones",
            params={"name": "example.com"},
        )

    def test_walks_up_to_parent_zone(self):
        mock_client = MagicMock()
        mock_client.get.side_effect = [_api_response([]), _api_response([{"id": "zone-parent"}])]
        provider = CloudflareDnsProvider(api_token="tok", _http_client=mock_client)

        assert provider._get_zone_id("_acme-challenge.www.example.com") == "zone-parent"
        names = [c.kwargs["params"]["name"] for c in mock_client.get.call_args_list]
        assert names == ["www.example.com", "example.com"]

    def test_raises_on_no_matching_zone(self):
        mock_client = MagicMock()
        mock_client.get.return_value = _api_response([])
        provider = CloudflareDnsProvider(api_token="tok", _http_client=mock_client)

        with pytest.raises(ValueError, match="No Cloudflare zone found for '_acme-challenge.missing.com'"):
            provider._get_zone_id("_acme-challenge.missing.com")


class TestCloudflareAddTxtValue:
    def test_creates_record_via_api(self):
        mock_client = MagicMock()
        # First GET: _get_zone_id; second GET: list existing records (none found)
        mock_client.get.side_effect = [_api_response([{"id": "zone-123"}]), _api_response([])]
        mock_client.post.return_value = MagicMock(status_code=200, raise_for_status=MagicMock())
        provider = CloudflareDnsProvider(api_token="tok", _http_client=mock_client)

        provider.add_txt_value("_acme-challenge.example.com", "token-val")

        mock_client.post.assert_called_once_with(
            f"{_BASE}/zones/zone-123/dns_records",
            json={
                "type": "TXT",
                "name": "_acme-challenge.example.com",
                "content": "token-val",
                "ttl": 60,
            },
        )

    def test_keeps_other_values_and_skips_duplicates(self):
        mock_client = MagicMock()
        mock_client.get.side_effect = [
            _api_response([{"id": "zone-123"}]),
            _api_response([{"id": "rec-1", "content": '"other-val"'}, {"id": "rec-2", "content": '"token-val"'}]),
        ]
        provider = CloudflareDnsProvider(api_token="tok", _http_client=mock_client)

        provider.add_txt_value("_acme-challenge.example.com", "token-val")

        mock_client.post.assert_not_called()
        mock_client.delete.assert_not_called()


class TestCloudflareRemoveTxtValue:
    def test_finds_and_deletes_matching_record(self):
        mock_client = MagicMock()
        mock_client.get.side_effect = [
            _api_response([{"id": "zone-123"}]),
            _api_response([{"id": "rec-456", "content": "token-val"}, {"id": "rec-789", "content": "other"}]),
        ]
        provider = CloudflareDnsProvider(api_token="tok", _http_client=mock_client)

        provider.remove_txt_value("_acme-challenge.example.com", "token-val")

        list_call = mock_client.get.call_args_list[1]
        assert list_call.args[0] == f"{_BASE}/zones/zone-123/dns_records"
        assert list_call.kwargs["params"] == {
            "type": "TXT",
            "name": "_acme-challenge.example.com",
        }
        mock_client.delete.assert_called_once_with(
            f"{_BASE}/zones/zone-123/dns_records/rec-456",
        )

    def test_skips_delete_when_value_not_found(self):
        mock_client = MagicMock()
        mock_client.get.side_effect = [
            _api_response([{"id": "zone-123"}]),
            _api_response([{"id": "rec-789", "content": "other"}]),
        ]
        provider = CloudflareDnsProvider(api_token="tok", _http_client=mock_client)

        provider.remove_txt_value("_acme-challenge.example.com", "token-val")

        mock_client.delete.assert_not_called()


class TestCloudflareAuthHeader:
    def test_client_uses_bearer_token(self):
        with patch("acme_orchestrator.dns.cloudflare.httpx.Client") as mock_cls:
            CloudflareDnsProvider(api_token="my-secret-token")
            mock_cls.assert_called_once()
            headers = mock_cls.call_args.kwargs["headers"]
            assert headers["Authorization"] == "Bearer my-secret-token"


class TestCloudflareClose:
    def test_close_closes_http_client(self):
        mock_client = MagicMock()
        provider = CloudflareDnsProvider(api_token="tok", _http_client=mock_client)

        provider.close()

        mock_client.close.assert_called_once()
