from traeusage.settings import HOST_KEY, JsonFileSettings, MemorySettings


class TestMemorySettings:
    def test_get_returns_default_when_missing(self) -> "None":
        assert MemorySettings().get("host", "fallback") == "fallback"

    def test_set_then_get(self) -> "None":
        settings = MemorySettings()
        settings.set(HOST_KEY, "https://example.test")
        assert settings.get(HOST_KEY) == "https://example.test"


class TestJsonFileSettings:
    def test_values_survive_reopen(self, tmp_path) -> "None":
        path = tmp_path / "settings.json"
        JsonFileSettings(path).set(HOST_KEY, "https://api-us-east.trae.ai")

        assert JsonFileSettings(path).get(HOST_KEY) == "https://api-us-east.trae.ai"

    def test_corrupt_file_starts_empty(self, tmp_path) -> "None":
        path = tmp_path / "settings.json"
        path.write_text("[1, 2", encoding="utf-8")

        assert JsonFileSettings(path).get(HOST_KEY) is None

    def test_non_object_file_starts_empty(self, tmp_path) -> "None":
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]", encoding="utf-8")

        assert JsonFileSettings(path).get(HOST_KEY) is None
