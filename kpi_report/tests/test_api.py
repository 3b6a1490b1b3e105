"""
HTTP contract tests for the KPI Report API.

Uses FastAPI's TestClient with the clock, settings and key-value store
dependencies overridden (see conftest api_client), and a stub narrative
client in place of the Anthropic SDK.
"""

from typing import Any, Dict
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from kpi_report.api.narrative import get_narrative_client_factory
from kpi_report.core.storage import InMemoryStore, load_records, save_cached_narrative
from kpi_report.main import app
from kpi_report.models import RawParsedData
from kpi_report.services.narrative import NarrativeClient
from kpi_report.tests.conftest import NARRATIVE_TEXT


def payload(raw: RawParsedData, **extra: Any) -> Dict[str, Any]:
    return {'data': raw.model_dump(), **extra}


class TestServiceEndpoints:

    def test_health(self, api_client: TestClient) -> None:
        response = api_client.get('/health')
        assert response.status_code == 200
        assert response.json() == {'status': 'healthy'}

    def test_root(self, api_client: TestClient) -> None:
        body = api_client.get('/').json()
        assert body['name'] == 'KPI Report API'
        assert body['docs'] == '/docs'


class TestAnalyticsEndpoints:

    def test_regional(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        response = api_client.post('/analytics/regional', json=payload(sample_raw, timeframe='lastMonth'))
        assert response.status_code == 200
        body = response.json()
        assert body['timeframe'] == 'lastMonth'
        paris = body['tp']['allBuckets'][0]
        assert (paris['key'], paris['trips'], paris['passthroughs']) == ('Paris', 10, 4)
        assert paris['rate'] == pytest.approx(40.0)

    def test_invalid_timeframe_is_400(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        response = api_client.post('/analytics/regional', json=payload(sample_raw, timeframe='fortnight'))
        assert response.status_code == 400
        assert 'fortnight' in response.json()['detail']

    def test_agent_deviations(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        response = api_client.post('/analytics/regional/agents', json=payload(sample_raw, timeframe='lastMonth'))
        assert [a['agentName'] for a in response.json()] == ['Alice Smith', 'Bob Jones']

    def test_recommendations_by_metric(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        tp = api_client.post(
            '/analytics/recommendations', json=payload(sample_raw, timeframe='lastMonth', metric='tp'),
        ).json()
        pq = api_client.post(
            '/analytics/recommendations', json=payload(sample_raw, timeframe='lastMonth', metric='pq'),
        ).json()
        assert [r['key'] for r in tp] == ['Rome']
        assert tp[0]['priority'] == 'low'
        assert pq == []

    def test_segments(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        body = api_client.post(
            '/analytics/segments',
            json=payload(sample_raw, timeframe='lastMonth', segment='repeat'),
        ).json()
        assert body['breakdown']['allBuckets'][0]['key'] == 'Repeat'

    def test_trends(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        body = api_client.post('/analytics/trends', json=payload(sample_raw, periods=3)).json()
        assert body['periodLabels'] == ['Aug 2026', 'Sep 2026', 'Oct 2026']

    def test_trends_rejects_zero_periods(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        response = api_client.post('/analytics/trends', json=payload(sample_raw, periods=0))
        assert response.status_code == 422

    def test_insights_and_prompt(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        insights = api_client.post('/analytics/insights', json=payload(sample_raw, timeframe='lastMonth')).json()
        prompt = api_client.post('/analytics/insights/prompt', json=payload(sample_raw, timeframe='lastMonth')).json()
        assert insights['bestPassthroughDay'] == 'Tuesday'
        assert '- Total Passthroughs: 4' in prompt['prompt']

    def test_charts(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        body = api_client.post('/analytics/charts', json=payload(sample_raw, timeframe='lastMonth')).json()
        assert body['passthroughsByDay'][0]['label'] == 'Tuesday'
        assert [r['key'] for r in body['regionTpRates']] == ['Paris', 'Rome']

    def test_agent_metrics_and_groups(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        metrics = api_client.post('/analytics/agents/metrics', json=payload(sample_raw, timeframe='all')).json()
        groups = api_client.post(
            '/analytics/agents/groups',
            json=payload(sample_raw, timeframe='all', seniors=['Bob Jones']),
        ).json()
        assert [m['agentName'] for m in metrics] == ['Alice Smith', 'Bob Jones']
        assert groups['seniors']['trips'] == 9
        assert groups['department']['trips'] == 19

    def test_agent_time_series(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        body = api_client.post(
            '/analytics/agents/time-series',
            json=payload(sample_raw, timeframe='all', seniors=['Bob Jones']),
        ).json()
        assert [a['agentName'] for a in body['agents']] == ['Alice Smith', 'Bob Jones']
        assert (body['startDate'], body['endDate']) == ('2026-08-20', '2026-09-18')
        assert sum(p['trips'] for p in body['seniorDaily']) == 9

    def test_segment_daily(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        body = api_client.post(
            '/analytics/segments/daily',
            json=payload(sample_raw, timeframe='all', segment='b2b'),
        ).json()
        assert [p['date'] for p in body] == ['2026-09-14', '2026-09-15', '2026-09-16']

    def test_quartiles_need_four_agents(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        response = api_client.post(
            '/analytics/quartiles',
            json=payload(sample_raw, timeframe='all', minPassthroughs=0),
        )
        assert response.status_code == 200
        assert response.json() is None

    def test_quartiles_from_exports(self, api_client: TestClient) -> None:
        agents = ['Ann', 'Ben', 'Cal', 'Dee']
        raw = RawParsedData(
            trips=[{'gtt owner': name, 'created date': '2026-09-01'} for name in agents],
            passthroughs=[{'gtt owner': name, 'passthrough to sales date': '2026-09-01'} for name in agents],
            hotPass=[{'gtt owner': 'Ann', 'created date': '2026-09-01'}],
        )
        body = api_client.post('/analytics/quartiles', json=payload(raw, minPassthroughs=1)).json()
        assert [a['agentName'] for a in body['topQuartileAgents']] == ['Ann']
        assert [a['agentName'] for a in body['bottomQuartileAgents']] == ['Dee']
        assert body['dailyComparison'][0]['topQuartileAgentCount'] == 1

    def test_time_series_rejects_regional_tokens(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        response = api_client.post(
            '/analytics/agents/time-series', json=payload(sample_raw, timeframe='lastMonth'),
        )
        assert response.status_code == 400

    def test_programs(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        body = api_client.post('/analytics/programs', json=sample_raw.model_dump()).json()
        assert body['programs'] == ['Europe', 'Faraway']
        assert body['destinations']['Faraway'] == ['Nowhere']

    def test_agenda(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        body = api_client.post(
            '/analytics/agenda',
            json=payload(sample_raw, timeframe='lastMonth', program='Europe'),
        ).json()
        assert body['date'] == '2026-10-15'
        assert [a['name'] for a in body['topAgents']] == ['Alice Smith', 'Bob Jones']

    def test_agenda_requires_program(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        response = api_client.post('/analytics/agenda', json=payload(sample_raw, program=''))
        assert response.status_code == 422

    def test_columns(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        body = api_client.post('/analytics/columns', json=sample_raw.model_dump()).json()
        assert 'destination' in body['trips']
        assert set(body) == {'trips', 'quotes', 'passthroughs', 'hotPass', 'bookings', 'nonConverted'}

    def test_ingest_upload(self, api_client: TestClient) -> None:
        trips_csv = (
            b"GTT Owner,Trip Name,Destination,Created Date\n"
            b"Alice Smith,,,\n"
            b",Trip 1,Paris,2026-09-01\n"
        )
        response = api_client.post(
            '/analytics/ingest',
            files={'trips': ('trips.csv', trips_csv, 'text/csv')},
        )
        assert response.status_code == 200
        body = response.json()
        assert body['trips'] == [{
            'gtt owner': 'Alice Smith',
            'trip name': 'Trip 1',
            'destination': 'Paris',
            'created date': '2026-09-01',
        }]
        assert body['quotes'] == []

    def test_numeric_cells_are_coerced(self, api_client: TestClient) -> None:
        raw = {'trips': [{'destination': 'Paris', 'created date': 46000, 'note': None}]}
        response = api_client.post('/analytics/columns', json=raw)
        assert response.status_code == 200


class TestNarrativeEndpoints:

    @pytest.fixture
    def stub_client(self, mock_anthropic: MagicMock):
        client = NarrativeClient(api_key='sk-test', client=mock_anthropic)
        app.dependency_overrides[get_narrative_client_factory] = lambda: (lambda: client)
        yield mock_anthropic

    def test_api_key_lifecycle(self, api_client: TestClient, memory_store: InMemoryStore) -> None:
        assert api_client.get('/narrative/api-key').json() == {'configured': False}

        assert api_client.put('/narrative/api-key', json={'apiKey': ' sk-test '}).json() == {'configured': True}
        assert api_client.get('/narrative/api-key').json() == {'configured': True}

        assert api_client.delete('/narrative/api-key').json() == {'configured': False}

    def test_empty_api_key_is_rejected(self, api_client: TestClient) -> None:
        assert api_client.put('/narrative/api-key', json={'apiKey': ''}).status_code == 422

    def test_generate_then_cached(self, api_client: TestClient, stub_client: MagicMock) -> None:
        first = api_client.post('/narrative/generate', json={'prompt': 'Summarize'}).json()
        second = api_client.post('/narrative/generate', json={'prompt': 'Summarize'}).json()

        assert first['text'] == NARRATIVE_TEXT
        assert first['cached'] is False
        assert first['lines'][0] == {'kind': 'heading', 'text': 'Key Findings:'}
        assert second['cached'] is True
        assert stub_client.messages.create.call_count == 1

    def test_refresh(self, api_client: TestClient, stub_client: MagicMock) -> None:
        api_client.post('/narrative/generate', json={'prompt': 'Summarize'})
        body = api_client.post('/narrative/generate', json={'prompt': 'Summarize', 'refresh': True}).json()
        assert body['cached'] is False
        assert stub_client.messages.create.call_count == 2

    def test_generate_from_insights(
        self,
        api_client: TestClient,
        stub_client: MagicMock,
        sample_raw: RawParsedData,
    ) -> None:
        insights = api_client.post('/analytics/insights', json=payload(sample_raw, timeframe='lastMonth')).json()
        response = api_client.post('/narrative/generate', json={'insights': insights})
        assert response.status_code == 200
        sent_prompt = stub_client.messages.create.call_args.kwargs['messages'][0]['content']
        assert 'Tuesday: 3 (75.0%)' in sent_prompt

    def test_missing_prompt_is_400(self, api_client: TestClient) -> None:
        assert api_client.post('/narrative/generate', json={}).status_code == 400

    def test_missing_api_key_is_400(self, api_client: TestClient) -> None:
        response = api_client.post('/narrative/generate', json={'prompt': 'Summarize'})
        assert response.status_code == 400
        assert 'API key' in response.json()['detail']

    def test_cache_hit_needs_no_api_key(self, api_client: TestClient, memory_store: InMemoryStore) -> None:
        save_cached_narrative(memory_store, 'Summarize', NARRATIVE_TEXT)

        replay = api_client.post('/narrative/generate', json={'prompt': 'Summarize'})
        assert replay.status_code == 200
        assert replay.json()['cached'] is True

        refresh = api_client.post('/narrative/generate', json={'prompt': 'Summarize', 'refresh': True})
        assert refresh.status_code == 400

    def test_service_failure_is_502(self, api_client: TestClient, stub_client: MagicMock) -> None:
        import anthropic
        import httpx

        stub_client.messages.create.side_effect = anthropic.APIConnectionError(
            request=httpx.Request('POST', 'https://api.anthropic.com/v1/messages'),
        )
        response = api_client.post('/narrative/generate', json={'prompt': 'Summarize'})
        assert response.status_code == 502

    def test_cached_endpoint(self, api_client: TestClient, memory_store: InMemoryStore) -> None:
        assert api_client.post('/narrative/cached', json={'prompt': 'Summarize'}).status_code == 404

        save_cached_narrative(memory_store, 'Summarize', NARRATIVE_TEXT)
        body = api_client.post('/narrative/cached', json={'prompt': 'Summarize'}).json()
        assert body['cached'] is True
        assert body['text'] == NARRATIVE_TEXT

    def test_parse(self, api_client: TestClient) -> None:
        body = api_client.post('/narrative/parse', json={'text': '**Title**\n- item'}).json()
        assert body == [
            {'kind': 'heading', 'text': 'Title'},
            {'kind': 'bullet', 'text': 'item'},
        ]


class TestRecordEndpoints:

    def test_update_then_read_then_clear(
        self,
        api_client: TestClient,
        sample_raw: RawParsedData,
        memory_store: InMemoryStore,
    ) -> None:
        assert api_client.get('/records').json()['agents'] == {}

        body = api_client.post('/records/update', json=payload(sample_raw, timeframe='all')).json()
        alice = body['records']['agents']['Alice Smith']
        assert alice['trips']['month']['value'] == 9
        assert alice['trips']['month']['periodStart'] == '2026-09-01'
        assert body['updates']

        saved = api_client.get('/records').json()
        assert saved['agents']['Bob Jones']['trips']['month']['value'] == 9

        again = api_client.post('/records/update', json=payload(sample_raw, timeframe='all')).json()
        assert again['updates'] == []

        assert api_client.delete('/records').json()['agents'] == {}
        assert load_records(memory_store).agents == {}

    def test_invalid_timeframe_is_400(self, api_client: TestClient, sample_raw: RawParsedData) -> None:
        response = api_client.post('/records/update', json=payload(sample_raw, timeframe='lastMonth'))
        assert response.status_code == 400
