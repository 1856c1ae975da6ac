import sys
import os
import asyncio
from datetime import datetime

import streamlit as st

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.client import AdminApiClient
from core.config import configure_logging, load_settings
from core.domain import MUTABLE_KINDS, STATUS_VOCABULARY, RecordKind
from core.filters import ALL, DATE_PRESETS, AMOUNT_PRESETS, FilterSpec, PriceRange, price_range_preset
from core.frp import initial_state
from core.money import format_money
from core.service import ConsoleService, RecordView
from core.errors import ConsoleError
from Analytics_Service.report import group_by, revenue_shares, top_n


# ============ Настройки ============
settings = load_settings()
configure_logging(settings.log_level)

st.set_page_config(
    page_title="Settlement Services Admin",
    page_icon="🧾",
    layout="wide",
    initial_sidebar_state="expanded",
)

PAGES = {
    "🛠️ Service Orders": RecordKind.SERVICE_ORDER,
    "📦 Product Orders": RecordKind.PRODUCT_ORDER,
    "💳 Payments": RecordKind.PAYMENT,
    "👥 Users": RecordKind.USER,
    "🎥 Webinars": RecordKind.WEBINAR,
    "📚 Products": RecordKind.CATALOG_PRODUCT,
}

if "states" not in st.session_state:
    st.session_state.states = {}


# ============ Вспомогательные функции ============
def run_console(kind: RecordKind, action):
    """
    Прогоняет async-действие над ConsoleService в своём event loop.
    Между перезапусками скрипта хранится только состояние экрана.
    """

    async def _run():
        async with AdminApiClient(settings) as client:
            service = ConsoleService(client, kind)
            service.state = st.session_state.states.get(kind, initial_state(kind))
            result = await action(service)
            st.session_state.states[kind] = service.state
            return result

    return asyncio.run(_run())


def show_notice(state: dict):
    notices = state.get("notices", ())
    if not notices:
        return
    notice = notices[-1]
    {"success": st.success, "warning": st.warning, "error": st.error}[notice.level](
        notice.message
    )


async def prepare_export(
    service: ConsoleService, fmt: str, spec: FilterSpec, sort_key: str, direction: str
):
    """Выгрузка через сервис, чтобы итог попал в уведомления экрана"""
    return service.export(fmt, spec, sort_key, direction, today=datetime.now().date())


def is_stale(state: dict) -> bool:
    if state.get("fetched_at") is None:
        return state.get("last_event") is None
    if settings.refresh_interval <= 0:
        return False
    age = datetime.now() - datetime.fromisoformat(state["fetched_at"])
    return age.total_seconds() >= settings.refresh_interval


# ============ SIDEBAR - Навигация ============
with st.sidebar:
    st.header("📂 Навигация")
    page = st.radio("Раздел:", list(PAGES), label_visibility="collapsed")
    st.divider()
    st.caption(f"API: {settings.api_url}")
    if settings.refresh_interval > 0:
        st.caption(f"Автообновление: каждые {settings.refresh_interval:.0f} с")

kind = PAGES[page]
state = st.session_state.states.get(kind, initial_state(kind))

st.title(page)

col_refresh, _ = st.columns([1, 5])
with col_refresh:
    manual_refresh = st.button("🔄 Обновить", key=f"refresh_{kind.value}")

if manual_refresh or is_stale(state):
    with st.spinner("⏳ Загрузка..."):
        run_console(kind, lambda service: service.refresh())
    state = st.session_state.states[kind]

show_notice(state)
records = state["records"]

# ============ Фильтры ============
st.subheader("🔍 Фильтры")
col1, col2, col3, col4 = st.columns(4)
with col1:
    search = st.text_input("Поиск", key=f"search_{kind.value}")
with col2:
    status = st.selectbox("Статус", [ALL] + list(STATUS_VOCABULARY[kind]), key=f"status_{kind.value}")
with col3:
    categories = sorted({r.category for r in records}, key=str.casefold)
    category = st.selectbox("Категория", [ALL] + categories, key=f"category_{kind.value}")
with col4:
    item_types = sorted({r.display_type for r in records})
    item_type = st.selectbox("Тип", [ALL] + item_types, key=f"type_{kind.value}")

col1, col2, col3, col4 = st.columns(4)
with col1:
    date_preset = st.selectbox("Период", list(DATE_PRESETS), key=f"date_{kind.value}")
with col2:
    if kind is RecordKind.PAYMENT:
        amount_preset = st.selectbox("Сумма", list(AMOUNT_PRESETS), key="amount_preset")
        price_range = price_range_preset(amount_preset)
    else:
        low = st.number_input("Цена от, $", min_value=0.0, value=0.0, key=f"min_{kind.value}")
        high = st.number_input("Цена до, $", min_value=0.0, value=0.0, key=f"max_{kind.value}")
        price_range = PriceRange(min=low or None, max=high or None)
with col3:
    sort_key = st.selectbox("Сортировка", ["date", "price", "status"], key=f"sort_{kind.value}")
    direction = st.radio("Порядок", ["desc", "asc"], horizontal=True, key=f"dir_{kind.value}")
with col4:
    role = ALL
    if kind is RecordKind.USER:
        role = st.selectbox("Роль", [ALL, "user", "admin"], key="role_filter")

spec = FilterSpec(
    search=search,
    status=status,
    category=category,
    item_type=item_type,
    date_preset=date_preset,
    price_range=price_range,
    role=role,
)

view = RecordView(records)
filtered = view.filtered(spec)

# ============ Статистика ============
st.divider()
snapshot = view.statistics(spec)
col1, col2, col3, col4 = st.columns(4)
with col1:
    st.metric("🧾 Записей", snapshot.total_count)
with col2:
    st.metric("💰 Выручка", format_money(snapshot.total_revenue))
with col3:
    st.metric("📊 Средний чек", format_money(round(snapshot.average_value)))
with col4:
    st.metric("⚠️ Пропущено", len(state["warnings"]))

if snapshot.counts_by_status:
    st.caption(" · ".join(f"{k}: {v}" for k, v in snapshot.counts_by_status.items()))

tab_table, tab_stats, tab_export = st.tabs(["📋 Таблица", "📈 Аналитика", "📤 Экспорт"])

with tab_table:
    page_size = settings.page_size
    current = st.number_input("Страница", min_value=1, value=1, key=f"page_{kind.value}")
    paged = view.page(spec, sort_key, direction, int(current), page_size)
    st.caption(f"Страница {paged.page} из {paged.total_pages} · найдено {paged.total_items}")

    rows = [
        {
            "id": r.id,
            "title": r.title,
            "category": r.category,
            "type": r.display_type,
            "status": r.status_label,
            "qty": r.quantity,
            "price": format_money(r.amount_minor),
            "total": format_money(r.revenue),
            "owner": r.owner.email if r.owner else "",
            "created": r.created_at.strftime("%Y-%m-%d %H:%M") if r.created_at else "",
        }
        for r in paged.items
    ]
    if rows:
        st.dataframe(rows, use_container_width=True, hide_index=True)
    else:
        st.info("Записи не найдены. Попробуйте изменить фильтры.")

    if kind in MUTABLE_KINDS:
        st.markdown("##### ⚡ Массовая смена статуса")
        selected = st.multiselect(
            "Записи",
            [r.id for r in filtered],
            format_func=lambda rid: next((f"{r.title} ({rid})" for r in filtered if r.id == rid), rid),
            key=f"bulk_ids_{kind.value}_{st.session_state.get('bulk_round', 0)}",
        )
        target = st.selectbox("Новый статус", list(STATUS_VOCABULARY[kind]), key=f"bulk_target_{kind.value}")
        if st.button("✅ Применить", key=f"bulk_apply_{kind.value}", disabled=not selected):
            try:
                with st.spinner("⏳ Обновление..."):
                    run_console(kind, lambda service: service.bulk_update(selected, target))
            except ConsoleError as exc:
                st.error(f"❌ {exc}")
            else:
                st.session_state.bulk_round = st.session_state.get("bulk_round", 0) + 1
                st.rerun()

with tab_stats:
    by_category = group_by(filtered, "category")
    col1, col2 = st.columns(2)
    with col1:
        st.subheader("🏆 Топ категорий")
        for idx, group in enumerate(top_n(by_category, 5), 1):
            st.write(f"{idx}. **{group.key}** — {format_money(group.revenue)} ({group.count})")
    with col2:
        st.subheader("🧩 Доли выручки")
        for key, share in revenue_shares(by_category, snapshot.total_revenue):
            st.write(f"**{key}**: {share:.1f}%")

    st.subheader("📅 Помесячно")
    report = view.report(spec)
    trend = report["monthlyTrend"]
    if trend:
        st.bar_chart({row["month"]: row["revenue"] for row in trend})

    st.subheader("🗂️ По типам")
    for row in report["byType"]:
        st.write(f"**{row['key']}**: {row['count']} · ${row['revenue']:.2f}")

with tab_export:
    st.caption("Выгружается текущий отфильтрованный и отсортированный вид, все страницы.")
    exports = st.session_state.setdefault("exports", {})
    col1, col2 = st.columns(2)
    for fmt, column, mime in (("csv", col1, "text/csv"), ("json", col2, "application/json")):
        with column:
            if st.button(f"📦 Подготовить {fmt.upper()}", key=f"prepare_{fmt}_{kind.value}"):
                result = run_console(
                    kind,
                    lambda service, fmt=fmt: prepare_export(service, fmt, spec, sort_key, direction),
                )
                exports[(kind, fmt)] = result.fold(lambda exc: None, lambda ready: ready)
                show_notice(st.session_state.states[kind])

            prepared = exports.get((kind, fmt))
            if prepared is not None:
                filename, content = prepared
                st.download_button(
                    f"⬇️ {filename}",
                    data=content,
                    file_name=filename,
                    mime=mime,
                    key=f"export_{fmt}_{kind.value}",
                )
