import matplotlib
import matplotlib.pyplot as plt
import pytest

import afexplot.plotting as plotting


def test_apply_default_style_with_overrides():
    plotting.apply_default_style(extra={"axes.titlesize": 10})
    assert matplotlib.rcParams["axes.titlesize"] == 10
    assert matplotlib.rcParams["pdf.fonttype"] == 42
    assert matplotlib.rcParams["axes.spines.top"] is False


def test_style_from_config_scales_fonts():
    params = plotting.style_from_config({"font_size": 9, "font_family": "sans-serif"})
    assert params["font.size"] == 9
    assert params["legend.fontsize"] == 8
    assert params["font.family"] == "sans-serif"


def test_to_inches_units():
    assert plotting.to_inches(None) is None
    assert plotting.to_inches(2.54, "cm") == pytest.approx(1.0)
    assert plotting.to_inches(25.4, "mm") == pytest.approx(1.0)
    with pytest.raises(ValueError, match="units"):
        plotting.to_inches(1.0, "pt")


def test_save_figure_creates_dirs_and_formats(tmp_path):
    fig, ax = plt.subplots()
    ax.plot([0, 1], [0, 1])
    outbase = tmp_path / "nested" / "fig"
    written = plotting.save_figure(fig, str(outbase), dpi=50, formats=("png", "pdf"))
    assert (tmp_path / "nested" / "fig.png").exists()
    assert (tmp_path / "nested" / "fig.pdf").exists()
    assert len(written) == 2


def test_save_figure_resizes(tmp_path):
    fig, _ = plt.subplots()
    plotting.save_figure(fig, str(tmp_path / "fig.svg"), width=10, height=5, units="cm", tight=False)
    width, height = fig.get_size_inches()
    assert width == pytest.approx(10 / 2.54)
    assert height == pytest.approx(5 / 2.54)
    assert (tmp_path / "fig.svg").exists()
