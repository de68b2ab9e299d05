"""Run the chart-release command line tool."""

from chart_release.tool.chart_release import main

if __name__ == "__main__":
    main()
