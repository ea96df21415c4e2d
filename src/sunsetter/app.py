"""SunSetter — Streamlit app showing today's sun path for a location.

Location comes from the browser (Geolocation API), a typed address, or the
San Francisco demo. AR is not offered here: Streamlit has no camera stream.
"""

import asyncio
import html

import streamlit as st
from dotenv import load_dotenv
from streamlit_js_eval import get_geolocation, streamlit_js_eval

load_dotenv()

from sunsetter.config import Settings, configure_logging  # noqa: E402
from sunsetter.ephemeris import find_closest_sample  # noqa: E402
from sunsetter.i18n import t  # noqa: E402
from sunsetter.models import AppState  # noqa: E402
from sunsetter.orchestrator import Orchestrator, select_fallback  # noqa: E402
from sunsetter.renderers.plotly_2d import PlotlyRenderer  # noqa: E402
from sunsetter.sensors import (  # noqa: E402
    FixedLocationGateway,
    GeocodingGateway,
    GeolocationPayloadGateway,
    SensorGateway,
)
from sunsetter.status import (  # noqa: E402
    describe_location,
    describe_moon,
    describe_sun,
    status_text,
)

_settings = Settings.from_env()
configure_logging(_settings.log_level)

# --- Language detection (browser-first via streamlit-js-eval) ---
# On the first run the JS call returns None; the rerun fills it in.
if "lang" not in st.session_state:
    _browser_lang: str | None = streamlit_js_eval(
        js_expressions="navigator.language", key="_lang_detect", height=0
    )
    if _browser_lang is not None:
        st.session_state.lang = "ko" if _browser_lang.lower().startswith("ko") else "en"

_lang: str = st.session_state.get("lang", _settings.lang)

st.set_page_config(
    page_title=t("page_title", _lang),
    page_icon="🌅",
    layout="centered",
)

# --- Session state initialization ---

if "orchestrator" not in st.session_state:
    st.session_state.orchestrator = None
if "awaiting_geolocation" not in st.session_state:
    st.session_state.awaiting_geolocation = False
if "address_label" not in st.session_state:
    st.session_state.address_label = None


def _start(gateway: SensorGateway) -> None:
    """Replace the current orchestrator with one driven by gateway and render once."""
    previous: Orchestrator | None = st.session_state.orchestrator
    if previous is not None:
        previous.dispose()
    orchestrator = Orchestrator(
        gateway, PlotlyRenderer(lang=_lang), settings=_settings, lang=_lang
    )
    st.session_state.orchestrator = orchestrator
    asyncio.run(orchestrator.initialize())
    asyncio.run(orchestrator.request_location())
    if isinstance(gateway, GeocodingGateway):
        st.session_state.address_label = gateway.display_name
    else:
        st.session_state.address_label = None


# --- Location input ---
col1, col2 = st.columns([3, 1])
with col1:
    address = st.text_input(t("label_address", _lang), key="address_input")
with col2:
    st.markdown("<div style='height:1.9rem'></div>", unsafe_allow_html=True)
    find_clicked = st.button(t("btn_find_address", _lang), use_container_width=True)

bcol1, bcol2 = st.columns(2)
with bcol1:
    if st.button(t("btn_use_my_location", _lang), use_container_width=True):
        st.session_state.awaiting_geolocation = True
with bcol2:
    if st.button(t("btn_demo", _lang), use_container_width=True):
        _start(FixedLocationGateway.demo())

if find_clicked and address:
    _start(
        GeocodingGateway(
            address, url=_settings.nominatim_url, user_agent=_settings.user_agent
        )
    )

if st.session_state.awaiting_geolocation:
    payload = get_geolocation()
    if payload is None:
        st.caption(t("waiting_location", _lang))
        st.stop()
    st.session_state.awaiting_geolocation = False
    _start(GeolocationPayloadGateway(lambda: payload))

orchestrator: Orchestrator | None = st.session_state.orchestrator
if orchestrator is None:
    st.markdown(
        f"<div style='padding:4rem 0; text-align:center; color:#556677;'>"
        f"{t('placeholder', _lang)}</div>",
        unsafe_allow_html=True,
    )
    st.stop()

status = orchestrator.get_status()
if status.state is AppState.ERROR:
    st.error(html.escape(status_text(status, _lang)))
    st.info(t(f"fallback_{select_fallback(status.confidence).value}", _lang))
    st.stop()

# --- Time navigation ---
ncol1, ncol2, ncol3 = st.columns(3)
with ncol1:
    if st.button(t("btn_next_sunrise", _lang), use_container_width=True):
        orchestrator.jump_to_next_sunrise()
with ncol2:
    if st.button(t("btn_now", _lang), use_container_width=True):
        orchestrator.return_to_now()
with ncol3:
    if st.button(t("btn_next_sunset", _lang), use_container_width=True):
        orchestrator.jump_to_next_sunset()

# --- Status and chart ---
location = orchestrator.get_current_location()
snapshot = orchestrator.snapshot
when = orchestrator.get_current_timestamp()

st.caption(status_text(status, _lang))
if location is not None:
    label = st.session_state.address_label
    st.markdown(
        f"**{t('label_location', _lang)}:** {describe_location(location)}"
        + (f" · {html.escape(label)}" if label else "")
    )
st.markdown(f"**{t('label_time', _lang)}:** {when.strftime('%Y-%m-%d %H:%M UTC')}")

if snapshot is not None:
    st.markdown(f"**{t('chart_sun', _lang)}:** {describe_sun(snapshot.sun, _lang)}")
    st.markdown(f"**{t('chart_moon', _lang)}:** {describe_moon(snapshot.moon, _lang)}")
elif status.samples:
    closest = find_closest_sample(status.samples, when)
    st.markdown(f"**{t('chart_sun', _lang)}:** {describe_sun(closest, _lang, reference=when)}")

renderer = orchestrator.renderer
if isinstance(renderer, PlotlyRenderer) and renderer.figure is not None:
    st.plotly_chart(renderer.figure, use_container_width=True, config={"displayModeBar": False})
