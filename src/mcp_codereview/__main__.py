from mcp_codereview.cli import reviewboard_main

if __name__ == "__main__":
    reviewboard_main()
