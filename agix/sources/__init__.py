"""Package sources: local directories, GitHub, git repositories and marketplaces."""