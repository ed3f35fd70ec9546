from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import partial

from fastapi import APIRouter, Depends, FastAPI, Request

from .llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from .llm.groq_client import has_api_key, rank_products
from .notifications.store import get_events, record_event
from .preferences.config import DEFAULT_STORE_CONFIG, StoreConfig
from .preferences.insights import insights_for
from .preferences.models import LearnedPreferences, PageContextUpdate
from .preferences.storage import JsonFileStorage, RecordStorage
from .preferences.store import Notifier, PreferenceStore
from .query.config import DEFAULT_QUERY_CONFIG, QueryConfig
from .query.models import ParseRequest, StructuredQuery
from .query.parser import QueryInterpreter, generate_search_terms
from .recommendations.config import DEFAULT_FUNNEL_CONFIG, FunnelConfig
from .recommendations.funnel import RecommendationFunnel, Scorer
from .recommendations.models import Product, QueryRequest, QueryResponse

logger = logging.getLogger(__name__)


@dataclass
class Services:
    interpreter: QueryInterpreter
    store: PreferenceStore
    funnel: RecommendationFunnel
    llm_config: LLMConfig


def build_services(
    storage: RecordStorage | None = None,
    scorer: Scorer | None = None,
    notifier: Notifier | None = record_event,
    query_config: QueryConfig = DEFAULT_QUERY_CONFIG,
    store_config: StoreConfig = DEFAULT_STORE_CONFIG,
    funnel_config: FunnelConfig = DEFAULT_FUNNEL_CONFIG,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> Services:
    """Construct the components in dependency order: interpreter, store, funnel."""
    interpreter = QueryInterpreter.from_config(query_config)
    store = PreferenceStore(
        storage or JsonFileStorage(store_config.data_dir),
        config=store_config,
        notifier=notifier,
    )
    funnel = RecommendationFunnel(
        scorer=scorer or partial(rank_products, config=llm_config),
        config=funnel_config,
    )
    return Services(interpreter=interpreter, store=store, funnel=funnel, llm_config=llm_config)


def get_services(request: Request) -> Services:
    return request.app.state.services


router = APIRouter()


# ── Public endpoints ─────────────────────────────────────────────────────


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/parse", response_model=StructuredQuery)
def parse(body: ParseRequest, services: Services = Depends(get_services)) -> StructuredQuery:
    return services.interpreter.parse(body.query)


@router.post("/search-terms")
def search_terms(body: ParseRequest, services: Services = Depends(get_services)) -> dict[str, list[str]]:
    return {"terms": generate_search_terms(services.interpreter.parse(body.query))}


@router.post("/query", response_model=QueryResponse)
async def query(body: QueryRequest, services: Services = Depends(get_services)) -> QueryResponse:
    # 1. Parse the free-text request
    structured = services.interpreter.parse(body.query)

    # 2. Learn from it before ranking so insights include this query
    await services.store.learn(body.query, structured)
    insights = insights_for(services.store)

    # 3. Filter and rank the supplied catalog products
    result = await services.funnel.recommend(structured, body.products, insights)
    logger.info(
        "Query %r: %d/%d products recommended (fallback=%s)",
        body.query, len(result.recommendations), result.total_products, result.fallback,
    )
    return QueryResponse(parsed=structured, insights=insights, result=result)


# ── Preferences & context ────────────────────────────────────────────────


@router.get("/preferences", response_model=LearnedPreferences)
async def preferences(services: Services = Depends(get_services)) -> LearnedPreferences:
    await services.store.load()
    return services.store.preferences


@router.delete("/preferences")
async def clear_preferences(services: Services = Depends(get_services)) -> dict[str, str]:
    await services.store.clear()
    return {"status": "preferences_cleared"}


@router.get("/context")
async def context(services: Services = Depends(get_services)) -> dict:
    await services.store.load()
    return {
        "context": services.store.context.model_dump(mode="json"),
        "insights": insights_for(services.store).model_dump(mode="json"),
    }


@router.post("/context/page")
async def update_page(
    body: PageContextUpdate,
    services: Services = Depends(get_services),
) -> dict:
    updated = await services.store.update_page_context(body.site, body.product_count)
    return updated.model_dump(mode="json")


@router.post("/context/browsed")
async def browsed_product(body: Product, services: Services = Depends(get_services)) -> dict:
    await services.store.record_browsed_product(body)
    return services.store.context.model_dump(mode="json")


@router.get("/scorer/status")
def scorer_status(services: Services = Depends(get_services)) -> dict[str, bool]:
    return {"has_api_key": has_api_key(services.llm_config)}


@router.get("/events")
def events(event_type: str | None = None) -> list[dict]:
    return get_events(event_type)


def create_app(services: Services | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.services.store.load()
        yield

    app = FastAPI(title="Salesbot Recommendation API", version="1.0.0", lifespan=lifespan)
    app.state.services = services or build_services()
    app.include_router(router)
    return app


app = create_app()
