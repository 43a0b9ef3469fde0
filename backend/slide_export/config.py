from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    app_name: str = "Slide Export API"
    api_prefix: str = "/api"
    frontend_origin: str = "http://localhost:3000"

    environment: str = "development"
    render_base_url: str | None = None
    editor_path: str = "/editor"
    inject_mode: str = "init_script"

    canvas_width: int = 1920
    canvas_height: int = 1080
    design_width: int = 881
    design_height: int = 495
    viewport_margin: int = 0
    pdf_device_scale: float = 1.0
    pptx_device_scale: float = 2.0
    user_agent: str = DEFAULT_USER_AGENT
    browser_executable_path: str | None = None
    browser_extra_args: list[str] = []

    navigation_timeout_ms: int = 15000
    content_ready_timeout_ms: int = 10000
    chart_ready_timeout_ms: int = 15000
    responsive_ready_timeout_ms: int = 8000
    table_ready_timeout_ms: int = 5000
    fallback_timeout_ms: int = 5000
    poll_interval_ms: int = 100

    base_settle_delay_ms: int = 2000
    chart_settle_delay_ms: int = 3500
    extra_chart_settle_delay_ms: int = 500
    max_settle_delay_ms: int = 6000

    pdf_job_timeout_s: int = 300
    pptx_job_timeout_s: int = 300
    max_concurrent_sessions: int = 2

    root_selector: str = ".slide-content"
    chart_container_selector: str = "[data-chart-container]"
    chart_surface_selector: str = "svg.recharts-surface"
    responsive_container_selector: str = ".recharts-responsive-container"
    chrome_selectors: list[str] = [
        ".sidebar",
        ".toolbar",
        ".controls",
        ".ui-overlay",
        ".figma-selection-box",
        ".resize-handle",
        ".text-popup",
        ".slide-nav",
    ]

    pptx_slide_width_emu: int = 12192000
    pptx_author: str = "Slide Export"
    pptx_subject: str = "Generated Presentation"

    chart_library_urls: list[str] = [
        "https://unpkg.com/react@18/umd/react.production.min.js",
        "https://unpkg.com/react-dom@18/umd/react-dom.production.min.js",
        "https://unpkg.com/recharts@2.8.0/umd/Recharts.js",
    ]
    chart_ready_flag_timeout_ms: int = 10000
    chart_settle_delay_after_ready_ms: int = 1000

    log_level: str = "INFO"
    suppress_health_access_logs: bool = True
    suppress_playwright_debug_logs: bool = True
    log_preview_chars: int = 180

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def is_production(self) -> bool:
        return str(self.environment or "").strip().lower() == "production"


settings = Settings()
