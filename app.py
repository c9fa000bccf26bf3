"""
FULLTECH offline console.

Shows connectivity, the offline queue and cache usage for the local storefront
cache, with manual sync and cleanup controls.

Run with:
    streamlit run app.py
"""

from __future__ import annotations
from dataclasses import dataclass

import streamlit as st

from fulltech_core.config import OfflineConfig, load_config
from fulltech_core.errors import ErrorContext
from fulltech_core.logging import setup_logging
from fulltech_core.offline import CacheManager, ConnectionManager, OfflineSync
from fulltech_core.services import ProductCatalogService
from fulltech_core.ui.notifications import StreamlitNotifier


@dataclass
class OfflineRuntime:
    """Everything the console needs, built once per server process."""
    config: OfflineConfig
    cache_manager: CacheManager
    connection: ConnectionManager
    sync: OfflineSync
    catalog: ProductCatalogService


@st.cache_resource
def get_runtime() -> OfflineRuntime:
    setup_logging()
    config = load_config()
    cache_manager = CacheManager(config)
    connection = ConnectionManager(config)
    sync = OfflineSync(cache_manager, connection, notifier=StreamlitNotifier())
    connection.initialize()
    sync.initialize()
    catalog = ProductCatalogService(cache_manager, sync)
    catalog.load_from_cache()
    return OfflineRuntime(config, cache_manager, connection, sync, catalog)


# ============================================================================
# PAGE CONFIGURATION
# ============================================================================
st.set_page_config(
    page_title="FULLTECH - Offline Console",
    page_icon="📶",
    layout="wide",
)

runtime = get_runtime()

st.title("FULLTECH · Offline")

# ============================================================================
# CONNECTION
# ============================================================================
status = runtime.connection.get_status_display()
status_cols = st.columns(4)
status_cols[0].metric("Estado", status["status"].upper())
status_cols[1].metric("Internet", "✅" if status["internet"] else "❌")
status_cols[2].metric("API", "✅" if status["api"] else "❌")
status_cols[3].metric("Fallos seguidos", status["failures"])

if st.button("🔍 Comprobar conexión"):
    with ErrorContext("Checking connection"):
        runtime.connection.check_connection()
    st.rerun()

# ============================================================================
# OFFLINE QUEUE
# ============================================================================
st.subheader("Acciones pendientes")
pending = runtime.sync.load_pending_actions()

if pending:
    st.dataframe(
        [
            {
                "id": action.id,
                "tipo": action.type,
                "método": action.method,
                "url": action.url,
                "reintentos": action.retries,
            }
            for action in pending
        ],
        use_container_width=True,
    )
else:
    st.info("No hay acciones pendientes")

if st.button("🔄 Sincronizar ahora", disabled=not runtime.sync.is_online):
    with ErrorContext("Syncing offline actions"):
        report = runtime.sync.sync_pending_actions()
        if report is not None:
            st.success(
                f"{len(report.succeeded)} sincronizadas · {len(report.retried)} reintentando · "
                f"{len(report.dropped)} descartadas"
            )

# ============================================================================
# CACHE
# ============================================================================
st.subheader("Caché local")
stats = runtime.cache_manager.get_cache_stats()
stat_cols = st.columns(len(stats))
for col, (name, count) in zip(stat_cols, stats.items()):
    col.metric(name, count)

if st.button("🧹 Limpiar caché antigua"):
    with ErrorContext("Cleaning old cache"):
        removed = runtime.cache_manager.clean_old_cache()
        st.success(f"{removed} registros eliminados")

# ============================================================================
# CATALOG
# ============================================================================
st.subheader("Catálogo")
if st.button("⬇️ Actualizar productos", disabled=not runtime.sync.is_online):
    result = runtime.catalog.refresh()
    if not result:
        st.error(f"Error: {result.error}")

categories = ["all"] + runtime.catalog.get_categories()
category = st.selectbox("Categoría", categories)
query = st.text_input("Buscar")

products = (
    runtime.catalog.search_products(query) if query else runtime.catalog.filter_by_category(category)
)
st.caption(f"{len(products)} productos")
for product in products[:50]:
    st.write(f"**{product.get('name', product.get('id'))}** · {product.get('category', '')}")
