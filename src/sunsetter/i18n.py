"""Simple two-language (ko/en) translation helper."""

_STRINGS: dict[str, dict[str, str]] = {
    "page_title": {
        "ko": "선셋터",
        "en": "SunSetter",
    },
    # Orchestrator states
    "status_init": {
        "ko": "초기화 중...",
        "en": "Initializing...",
    },
    "status_permissions": {
        "ko": "권한 요청 중...",
        "en": "Requesting permissions...",
    },
    "status_sensing": {
        "ko": "센서 데이터 수신 중...",
        "en": "Getting sensor data...",
    },
    "status_computing": {
        "ko": "태양 위치 계산 중...",
        "en": "Computing sun position...",
    },
    "status_rendering": {
        "ko": "준비 완료 (신뢰도 {confidence}%)",
        "en": "Ready ({confidence}% confidence)",
    },
    "status_error": {
        "ko": "오류: {error}",
        "en": "Error: {error}",
    },
    "status_fallback": {
        "ko": "대체 모드로 실행 중",
        "en": "Running in fallback mode",
    },
    "unknown_error": {
        "ko": "알 수 없는 오류",
        "en": "Unknown error",
    },
    # Error copy surfaced through AppStatus.error
    "error_location_permission": {
        "ko": "위치 권한이 거부되었어요. 위치 접근을 허용한 뒤 다시 시도해 주세요.",
        "en": "Location permission denied. Please enable location access and try again.",
    },
    "error_location_timeout": {
        "ko": "위치 요청 시간이 초과되었어요. 다시 시도해 주세요.",
        "en": "Location request timed out. Please try again.",
    },
    "error_location_unavailable": {
        "ko": "위치를 사용할 수 없어요. 기기 설정을 확인해 주세요.",
        "en": "Location not available. Please check your device settings.",
    },
    "error_compute": {
        "ko": "태양 경로를 계산하지 못했어요.",
        "en": "Failed to compute sun path.",
    },
    "error_camera_permission": {
        "ko": "카메라 권한이 거부되어 AR 모드를 시작할 수 없어요.",
        "en": "Failed to start AR mode. Camera permission denied.",
    },
    "error_camera_unavailable": {
        "ko": "카메라를 사용할 수 없어 AR 모드를 시작할 수 없어요.",
        "en": "Failed to start AR mode. Camera not available.",
    },
    # Fallback modes
    "fallback_demo": {
        "ko": "데모 모드 (샌프란시스코)",
        "en": "Demo mode (San Francisco)",
    },
    "fallback_manual": {
        "ko": "직접 위치 입력",
        "en": "Manual location entry",
    },
    "fallback_2d": {
        "ko": "2D 보기",
        "en": "2D view",
    },
    # Sun / moon descriptions
    "sun_visible": {
        "ko": "☀️ 보임",
        "en": "☀️ visible",
    },
    "sun_below": {
        "ko": "🌙 지평선 아래",
        "en": "🌙 below horizon",
    },
    "moon_visible": {
        "ko": "🌙 보임",
        "en": "🌙 visible",
    },
    "moon_below": {
        "ko": "🌑 지평선 아래",
        "en": "🌑 below horizon",
    },
    "elevation": {
        "ko": "고도",
        "en": "elevation",
    },
    "no_sun_data": {
        "ko": "태양 데이터 없음",
        "en": "No sun data available",
    },
    "moon_lit": {
        "ko": "밝기 {illumination}%, 위상 {phase}%",
        "en": "{illumination}% lit, phase {phase}%",
    },
    "moon_new": {
        "ko": "삭",
        "en": "New Moon",
    },
    "moon_waxing_crescent": {
        "ko": "초승달",
        "en": "Waxing Crescent",
    },
    "moon_first_quarter": {
        "ko": "상현달",
        "en": "First Quarter",
    },
    "moon_waxing_gibbous": {
        "ko": "차가는 달",
        "en": "Waxing Gibbous",
    },
    "moon_full": {
        "ko": "보름달",
        "en": "Full Moon",
    },
    "moon_waning_gibbous": {
        "ko": "기우는 달",
        "en": "Waning Gibbous",
    },
    "moon_last_quarter": {
        "ko": "하현달",
        "en": "Last Quarter",
    },
    "moon_waning_crescent": {
        "ko": "그믐달",
        "en": "Waning Crescent",
    },
    # Charts and CLI
    "chart_title": {
        "ko": "태양 경로",
        "en": "Sun path",
    },
    "chart_sun": {
        "ko": "태양",
        "en": "Sun",
    },
    "chart_moon": {
        "ko": "달",
        "en": "Moon",
    },
    "chart_track": {
        "ko": "경로",
        "en": "Track",
    },
    "chart_camera_view": {
        "ko": "카메라 시야",
        "en": "Camera view",
    },
    "label_sunrise": {
        "ko": "일출",
        "en": "Sunrise",
    },
    "label_sunset": {
        "ko": "일몰",
        "en": "Sunset",
    },
    "label_solar_noon": {
        "ko": "남중",
        "en": "Solar noon",
    },
    "label_next_sunrise": {
        "ko": "다음 일출",
        "en": "Next sunrise",
    },
    "label_next_sunset": {
        "ko": "다음 일몰",
        "en": "Next sunset",
    },
    "label_location": {
        "ko": "위치",
        "en": "Location",
    },
    "label_time": {
        "ko": "시각",
        "en": "Time",
    },
    "label_address": {
        "ko": "주소",
        "en": "Address",
    },
    "none_today": {
        "ko": "없음",
        "en": "none",
    },
    # Streamlit app
    "btn_use_my_location": {
        "ko": "📍 내 위치 사용",
        "en": "📍 Use my location",
    },
    "btn_find_address": {
        "ko": "주소로 찾기",
        "en": "Find address",
    },
    "btn_demo": {
        "ko": "데모 보기",
        "en": "Try demo",
    },
    "btn_next_sunrise": {
        "ko": "🌅 다음 일출",
        "en": "🌅 Next sunrise",
    },
    "btn_next_sunset": {
        "ko": "🌇 다음 일몰",
        "en": "🌇 Next sunset",
    },
    "btn_now": {
        "ko": "지금",
        "en": "Now",
    },
    "placeholder": {
        "ko": "위치를 정하면 오늘의 태양 경로를 보여드려요",
        "en": "Choose a location to see today's sun path",
    },
    "waiting_location": {
        "ko": "브라우저에서 위치를 가져오는 중...",
        "en": "Waiting for the browser location...",
    },
}


def t(key: str, lang: str) -> str:
    """Return the translated string for key in lang.

    Falls back to 'en', then to the key itself if not found.
    """
    entry = _STRINGS.get(key)
    if entry is None:
        return key
    return entry.get(lang) or entry.get("en") or key
